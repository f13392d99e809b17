"""
ZkJoin - Zero-Knowledge Mutual Authentication for Group Membership

Trust · Challenge · Proof · Verdict

A Prover joins a named group by proving, against a fresh single-use
challenge, that it knows a secret on the group's allow-list or holds a
valid credential from the group's trusted issuer. The Verifier learns
nothing beyond that fact.

Version: 0.1.0
"""

__version__ = "0.1.0"

# Identity & wire format
from .identity import BindingKind, Identity, VerifiableCredential, derive_public_id
from .messages import Challenge, JoinRequest, JoinResult, ProofSubmission, decode, encode

# Verifier-side trust state
from .trust import (
    AclTrustStore,
    ChallengeLedger,
    IssuerRegistry,
    NonceGenerator,
    TrustStore,
    create_nonce_generator,
)

# Proof engines
from .engine import DigestProofEngine, IssuerKeyPair, ProofEngine

# Transport
from .transport import InMemoryRelay, RelayConfig, Transport

# Protocol
from .protocol import (
    AclProver,
    CredentialProver,
    FailureReason,
    ProverOutcome,
    Verdict,
    Verifier,
    VerifierOutcome,
)
from .protocol.session import SessionReport, run_session
from .attestation import AttestationReport, Attestor, verify_report
from .config import ZkJoinConfig, load_secret

from .exceptions import ZkJoinError

__all__ = [
    "__version__",
    # Identity & wire format
    "BindingKind",
    "Identity",
    "VerifiableCredential",
    "derive_public_id",
    "JoinRequest",
    "Challenge",
    "ProofSubmission",
    "JoinResult",
    "encode",
    "decode",
    # Trust
    "TrustStore",
    "AclTrustStore",
    "IssuerRegistry",
    "NonceGenerator",
    "create_nonce_generator",
    "ChallengeLedger",
    # Engines
    "ProofEngine",
    "DigestProofEngine",
    "IssuerKeyPair",
    # Transport
    "Transport",
    "RelayConfig",
    "InMemoryRelay",
    # Protocol
    "AclProver",
    "CredentialProver",
    "Verifier",
    "Verdict",
    "FailureReason",
    "ProverOutcome",
    "VerifierOutcome",
    "SessionReport",
    "run_session",
    "AttestationReport",
    "Attestor",
    "verify_report",
    # Configuration
    "ZkJoinConfig",
    "load_secret",
    "ZkJoinError",
]
