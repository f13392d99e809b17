"""Shared fixtures for ZkJoin tests."""

import pytest

from zkjoin.engine import DigestProofEngine, IssuerKeyPair
from zkjoin.identity import VerifiableCredential
from zkjoin.transport import InMemoryRelay, RelayConfig

ALICE_SECRET = b"alice-secret"
MALLORY_SECRET = b"mallory-secret"
ISSUE_DATE = 1_700_000_000
EXPIRY_DATE = ISSUE_DATE + 86_400


class FakeClock:
    """Settable unix-seconds clock."""

    def __init__(self, now: float = ISSUE_DATE + 100) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    eng = DigestProofEngine()
    eng.init()
    return eng


@pytest.fixture
def relay():
    return InMemoryRelay(RelayConfig(timeout_seconds=1.0))


@pytest.fixture
def issuer():
    return IssuerKeyPair.from_seed(12345)


@pytest.fixture
def other_issuer():
    return IssuerKeyPair.from_seed(67890)


def make_credential(
    issuer: IssuerKeyPair,
    issue_date: int = ISSUE_DATE,
    expiry_date: int = EXPIRY_DATE,
) -> VerifiableCredential:
    credential = VerifiableCredential(
        holder_id="alice@company.com",
        issuer="Company Inc.",
        issue_date=issue_date,
        expiry_date=expiry_date,
        claims={"role": "member"},
    )
    return DigestProofEngine().sign_credential(credential, issuer)


@pytest.fixture
def credential(issuer):
    return make_credential(issuer)
