"""
Session Attestation

Signed statements a principal makes about a finished session: which code
ran (a measurement of the principal's class), how the session ended, and
for which group and nonce. Reports are Ed25519-signed over canonical JSON
so a third party can check them with the attestor's public key alone.
"""

from __future__ import annotations

import hashlib
import inspect
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

from zkjoin.engine.keys import IssuerKeyPair, verify_ed25519
from zkjoin.exceptions import AttestationError
from zkjoin.protocol.outcome import SessionOutcome, Verdict

logger = logging.getLogger(__name__)


def measure(principal: Any) -> str:
    """SHA-256 over the source of ``principal``'s class.

    Falls back to the qualified class name when the source is unavailable
    (frozen or interactive builds).
    """
    cls = principal if isinstance(principal, type) else type(principal)
    try:
        material = inspect.getsource(cls).encode()
    except (OSError, TypeError):
        material = f"{cls.__module__}.{cls.__qualname__}".encode()
    return hashlib.sha256(material).hexdigest()


class AttestationReport(BaseModel):
    """Signed end-of-session statement."""

    principal: str
    measurement: str
    verdict: Verdict
    group_name: Optional[str] = None
    nonce: Optional[int] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    signature: bytes = b""

    @field_validator("signature", mode="before")
    @classmethod
    def _parse_signature(cls, v: Any) -> Any:
        if isinstance(v, str):
            return bytes.fromhex(v)
        return v

    @field_serializer("signature", when_used="json")
    def _serialize_signature(self, v: bytes) -> str:
        return v.hex()

    def signable_bytes(self) -> bytes:
        """Canonical bytes used for signing (excludes signature)."""
        data = self.model_dump(mode="json", exclude={"signature"})
        return json.dumps(data, sort_keys=True, separators=(",", ":")).encode()


class Attestor:
    """Signs reports on behalf of one principal.

    Args:
        principal: Name recorded in each report, e.g. ``"verifier"``.
        key: Signing key. A fresh one is generated if omitted.
    """

    def __init__(self, principal: str, key: Optional[IssuerKeyPair] = None) -> None:
        if not principal:
            raise ValueError("principal must not be empty")
        self.principal = principal
        self._key = key or IssuerKeyPair.generate()

    @property
    def public_key(self) -> bytes:
        return self._key.public_bytes

    def attest(self, outcome: SessionOutcome, subject: Any = None) -> AttestationReport:
        """Sign a report for ``outcome``.

        Args:
            outcome: Outcome of a session that ran to completion.
            subject: The principal object to measure; defaults to the
                outcome type.

        Raises:
            AttestationError: If the session did not reach ``completed``.
        """
        if not outcome.completed:
            raise AttestationError(
                f"cannot attest a session that stopped in state {outcome.state!r}"
            )
        report = AttestationReport(
            principal=self.principal,
            measurement=measure(subject if subject is not None else outcome),
            verdict=outcome.verdict,
            group_name=outcome.group_name,
            nonce=outcome.nonce,
        )
        signature = self._key.sign(report.signable_bytes())
        logger.info("Attested %s session for %s", self.principal, outcome.group_name)
        return report.model_copy(update={"signature": signature})


def verify_report(report: AttestationReport, public_key: bytes) -> bool:
    """Whether ``report`` was signed by ``public_key`` and is unaltered."""
    if not report.signature:
        return False
    return verify_ed25519(public_key, report.signature, report.signable_bytes())


__all__ = ["AttestationReport", "Attestor", "measure", "verify_report"]
