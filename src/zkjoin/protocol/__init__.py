"""
Protocol Layer

The two principals of a join session and the runner that pairs them:

- **Prover**: asks to join and answers the challenge with a proof.
- **Verifier**: authorizes, challenges and checks the proof.

The runner lives in ``zkjoin.protocol.session``.
"""

from .outcome import (
    FailureReason,
    ProverOutcome,
    SessionOutcome,
    Verdict,
    VerifierOutcome,
)
from .prover import AclProver, CredentialProver, Prover, ProverState
from .verifier import Verifier, VerifierState

__all__ = [
    "Verdict",
    "FailureReason",
    "SessionOutcome",
    "ProverOutcome",
    "VerifierOutcome",
    "Prover",
    "ProverState",
    "AclProver",
    "CredentialProver",
    "Verifier",
    "VerifierState",
]
