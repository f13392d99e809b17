"""
ZkJoin CLI

Commands:
- derive-id: Print the public identity for a secret
- keygen: Create an issuer key pair
- issue-credential: Sign a credential and print it as JSON
- demo acl / demo credential: Run a full join session in memory
- check-config: Validate a Verifier configuration file
"""

import asyncio
import json
import logging
import time
from typing import Optional

import click
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from zkjoin import __version__
from zkjoin.attestation import Attestor, verify_report
from zkjoin.config import SECRET_ENV_VAR, ZkJoinConfig, load_secret
from zkjoin.engine import DigestProofEngine, IssuerKeyPair
from zkjoin.exceptions import ZkJoinError
from zkjoin.identity import VerifiableCredential, derive_public_id
from zkjoin.protocol import AclProver, CredentialProver, Verifier
from zkjoin.protocol.session import SessionReport, run_session
from zkjoin.trust import AclTrustStore, ChallengeLedger, IssuerRegistry
from zkjoin.transport import InMemoryRelay, RelayConfig

console = Console()

_VERDICT_STYLES = {
    "valid": "bold green",
    "invalid": "bold red",
    "system_error": "bold yellow",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _output_json(data: object) -> None:
    """Print data as JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def _fail(exc: Exception) -> None:
    click.echo(f"Error: {exc}", err=True)
    raise SystemExit(1)


def _print_report(report: SessionReport, as_json: bool) -> None:
    if as_json:
        _output_json(report.model_dump(mode="json"))
        return

    table = Table(box=box.ROUNDED)
    table.add_column("Principal", style="cyan", no_wrap=True)
    table.add_column("Verdict")
    table.add_column("State")
    table.add_column("Detail")
    table.add_column("Transitions", style="dim")

    for name, outcome in (("prover", report.prover), ("verifier", report.verifier)):
        style = _VERDICT_STYLES.get(outcome.verdict.value, "white")
        detail = outcome.detail
        reason = getattr(outcome, "reason", None)
        if reason is not None:
            detail = f"{detail} ({reason.value})"
        table.add_row(
            name,
            f"[{style}]{outcome.verdict.value}[/{style}]",
            outcome.state,
            detail or "-",
            " > ".join(outcome.transitions),
        )

    console.print(table)
    for attestation in report.attestations:
        console.print(
            f"  attestation [cyan]{attestation.principal}[/cyan] "
            f"measurement {attestation.measurement[:16]}..."
        )
    console.print()


@click.group()
@click.version_option(__version__, prog_name="zkjoin")
@click.option("--verbose", "-v", is_flag=True, help="Log protocol steps at DEBUG level.")
def main(verbose: bool):
    """Zero-knowledge mutual authentication for joining a group."""
    _configure_logging(verbose)


@main.command("derive-id")
@click.argument("secret", required=False)
@click.option("--secret-file", type=click.Path(exists=True, dir_okay=False), default=None)
def derive_id(secret: Optional[str], secret_file: Optional[str]):
    """Print the public identity (SHA-256) for SECRET.

    Without SECRET the secret is read from --secret-file or $ZKJOIN_PROVER_SECRET.
    """
    try:
        raw = secret.encode("utf-8") if secret else load_secret(SECRET_ENV_VAR, secret_file)
    except ZkJoinError as exc:
        _fail(exc)
    click.echo(derive_public_id(raw).hex)


@main.command()
@click.option("--seed", type=int, default=None, help="Derive the key from a 64-bit seed.")
def keygen(seed: Optional[int]):
    """Create an issuer key pair and print it as JSON."""
    try:
        pair = IssuerKeyPair.from_seed(seed) if seed is not None else IssuerKeyPair.generate()
    except ZkJoinError as exc:
        _fail(exc)
    _output_json({"public_key": pair.public_hex, "private_key": pair.private_hex})


@main.command("issue-credential")
@click.option("--issuer-key", default=None, help="Issuer private key (hex).")
@click.option("--issuer-seed", type=int, default=None, help="Issuer key seed.")
@click.option("--holder", required=True, help="Holder handle, e.g. alice@company.com.")
@click.option("--issuer-name", required=True, help="Human-readable issuer label.")
@click.option("--issue-date", type=int, default=None, help="Unix seconds; defaults to now.")
@click.option("--valid-for", type=int, default=86400, show_default=True, help="Seconds of validity.")
@click.option("--claim", "claims", multiple=True, help="KEY=VALUE claim; repeatable.")
def issue_credential(
    issuer_key: Optional[str],
    issuer_seed: Optional[int],
    holder: str,
    issuer_name: str,
    issue_date: Optional[int],
    valid_for: int,
    claims: tuple[str, ...],
):
    """Sign a verifiable credential and print it as JSON."""
    if (issuer_key is None) == (issuer_seed is None):
        raise click.UsageError("give exactly one of --issuer-key and --issuer-seed")

    parsed = {}
    for claim in claims:
        key, sep, value = claim.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {claim!r}", param_hint="--claim")
        parsed[key] = value

    start = issue_date if issue_date is not None else int(time.time())
    try:
        pair = (
            IssuerKeyPair.from_private_hex(issuer_key)
            if issuer_key is not None
            else IssuerKeyPair.from_seed(issuer_seed)
        )
        engine = DigestProofEngine()
        credential = engine.sign_credential(
            VerifiableCredential(
                holder_id=holder,
                issuer=issuer_name,
                issue_date=start,
                expiry_date=start + valid_for,
                claims=parsed,
            ),
            pair,
        )
    except (ZkJoinError, ValueError) as exc:
        _fail(exc)
    _output_json(credential.model_dump(mode="json"))


@main.group()
def demo():
    """Run a complete join session over an in-memory relay."""


def _run_demo(prover, verifier, attest: bool, as_json: bool) -> None:
    prover_attestor = Attestor("prover") if attest else None
    verifier_attestor = Attestor("verifier") if attest else None
    report = asyncio.run(run_session(prover, verifier, prover_attestor, verifier_attestor))
    for attestation in report.attestations:
        attestor = prover_attestor if attestation.principal == "prover" else verifier_attestor
        if not verify_report(attestation, attestor.public_key):
            raise click.ClickException(f"{attestation.principal} attestation does not verify")
    _print_report(report, as_json)
    if not report.admitted:
        raise SystemExit(1)


@demo.command("acl")
@click.option("--group", default="engineering", show_default=True)
@click.option("--secret", default="correct horse battery staple", show_default=True)
@click.option("--member-secret", default=None, help="Secret on the ACL; defaults to --secret.")
@click.option("--timeout", type=float, default=5.0, show_default=True)
@click.option("--attest", is_flag=True, help="Attach signed attestation reports.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def demo_acl(
    group: str,
    secret: str,
    member_secret: Optional[str],
    timeout: float,
    attest: bool,
    as_json: bool,
):
    """Join GROUP by proving knowledge of a secret on its ACL."""
    member = derive_public_id((member_secret or secret).encode("utf-8"))
    relay = InMemoryRelay(RelayConfig(timeout_seconds=timeout))
    verifier = Verifier(
        AclTrustStore({group: [member.value]}),
        DigestProofEngine(),
        relay,
        timeout_seconds=timeout,
    )
    prover = AclProver(
        secret.encode("utf-8"), group, DigestProofEngine(), relay, timeout_seconds=timeout
    )
    _run_demo(prover, verifier, attest, as_json)


@demo.command("credential")
@click.option("--group", default="partners", show_default=True)
@click.option("--issuer-seed", type=int, default=12345, show_default=True)
@click.option("--expired", is_flag=True, help="Present a credential that has expired.")
@click.option("--timeout", type=float, default=5.0, show_default=True)
@click.option("--attest", is_flag=True, help="Attach signed attestation reports.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def demo_credential(
    group: str,
    issuer_seed: int,
    expired: bool,
    timeout: float,
    attest: bool,
    as_json: bool,
):
    """Join GROUP with a credential from its trusted issuer."""
    issuer = IssuerKeyPair.from_seed(issuer_seed)
    now = int(time.time())
    start, end = (now - 7200, now - 3600) if expired else (now - 3600, now + 86400)
    engine = DigestProofEngine()
    credential = engine.sign_credential(
        VerifiableCredential(
            holder_id="alice@company.com",
            issuer="Company Inc.",
            issue_date=start,
            expiry_date=end,
            claims={"role": "member"},
        ),
        issuer,
    )

    relay = InMemoryRelay(RelayConfig(timeout_seconds=timeout))
    verifier = Verifier(
        IssuerRegistry({group: issuer.public_bytes}),
        DigestProofEngine(),
        relay,
        ledger=ChallengeLedger(),
        timeout_seconds=timeout,
    )
    prover = CredentialProver(credential, group, engine, relay, timeout_seconds=timeout)
    _run_demo(prover, verifier, attest, as_json)


@main.command("check-config")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def check_config(path: str):
    """Validate a Verifier configuration file."""
    try:
        config = ZkJoinConfig.from_yaml(path)
        store = config.build_trust_store()
        config.build_ledger()
    except ZkJoinError as exc:
        _fail(exc)

    kind = "acl" if isinstance(store, AclTrustStore) else "issuer registry"
    console.print(f"[green]OK[/green] {path}: {kind} with {len(store.groups())} group(s)")
    for group in store.groups():
        console.print(f"  - {group}")


if __name__ == "__main__":
    main()
