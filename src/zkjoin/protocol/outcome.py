# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""Session outcomes for both principals."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# Wire texts are deliberately coarse; outcomes keep the precise reason.
DETAIL_NOT_AUTHORIZED = "not authorized"
DETAIL_PROOF_FAILED = "proof failed"
DETAIL_SYSTEM_ERROR = "system error"


class Verdict(str, Enum):
    """How a session ended for one principal."""

    VALID = "valid"
    INVALID = "invalid"
    SYSTEM_ERROR = "system_error"


class FailureReason(str, Enum):
    """Internal diagnostic for a failed session. Never sent on the wire."""

    AUTHORIZATION_DENIED = "authorization_denied"
    CHALLENGE_NOT_FOUND = "challenge_not_found"
    CHALLENGE_REPLAY = "challenge_replay"
    CHALLENGE_EXPIRED = "challenge_expired"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    BINDING_MISMATCH = "binding_mismatch"
    PROOF_INVALID = "proof_invalid"
    PROOF_ENGINE_ERROR = "proof_engine_error"
    TRANSPORT_ERROR = "transport_error"


class SessionOutcome(BaseModel):
    """Fields shared by both principals' outcomes."""

    verdict: Verdict
    state: str = Field(..., description="State the machine stopped in")
    group_name: Optional[str] = None
    nonce: Optional[int] = None
    detail: str = ""
    error: Optional[str] = Field(None, description="Infrastructure error text, if any")
    transitions: list[str] = Field(default_factory=list)
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_valid(self) -> bool:
        return self.verdict == Verdict.VALID

    @property
    def completed(self) -> bool:
        """Whether the protocol reached its ``completed`` state."""
        return self.state == "completed"


class ProverOutcome(SessionOutcome):
    """Result of one Prover run.

    Attributes:
        proof_generated: Whether the proof engine produced a proof.
    """

    proof_generated: bool = False


class VerifierOutcome(SessionOutcome):
    """Result of one Verifier session.

    Attributes:
        reason: Internal failure class; distinguishes replay from unknown
            nonce, and authentication failures from infrastructure ones.
        challenge_issued: Whether a challenge was sent.
        engine_invoked: Whether the proof engine verified anything.
    """

    reason: Optional[FailureReason] = None
    challenge_issued: bool = False
    engine_invoked: bool = False


__all__ = [
    "DETAIL_NOT_AUTHORIZED",
    "DETAIL_PROOF_FAILED",
    "DETAIL_SYSTEM_ERROR",
    "Verdict",
    "FailureReason",
    "SessionOutcome",
    "ProverOutcome",
    "VerifierOutcome",
]
