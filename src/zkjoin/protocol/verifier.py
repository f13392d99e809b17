# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Verifier State Machine

One session per ``serve_once`` call:

    init -> awaiting_request -> authorizing -> challenge_issued
         -> awaiting_proof -> verifying -> completed

Authorization happens before a challenge is issued, and the proof engine is
only touched for authorized requests. The ledger outlives sessions, so a
proof replayed into a later session is still recognised.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Optional

from zkjoin.engine.base import ProofEngine
from zkjoin.exceptions import (
    CapacityExceededError,
    ChallengeExpiredError,
    ChallengeNotFoundError,
    ChallengeReplayError,
    ProofEngineError,
    TransportError,
)
from zkjoin.identity import BindingKind
from zkjoin.messages import JoinRequest, JoinResult, ProofSubmission, decode, encode
from zkjoin.protocol.outcome import (
    DETAIL_NOT_AUTHORIZED,
    DETAIL_PROOF_FAILED,
    DETAIL_SYSTEM_ERROR,
    FailureReason,
    Verdict,
    VerifierOutcome,
)
from zkjoin.trust.ledger import ChallengeLedger, ChallengeRecord
from zkjoin.trust.store import TrustBinding, TrustStore
from zkjoin.transport.base import ChannelName, Transport

logger = logging.getLogger(__name__)


class VerifierState(str, Enum):
    INIT = "init"
    AWAITING_REQUEST = "awaiting_request"
    AUTHORIZING = "authorizing"
    CHALLENGE_ISSUED = "challenge_issued"
    AWAITING_PROOF = "awaiting_proof"
    VERIFYING = "verifying"
    COMPLETED = "completed"


class _SessionFailed(Exception):
    """Ends a session early with a verdict and a wire detail."""

    def __init__(self, verdict: Verdict, reason: FailureReason, detail: str) -> None:
        super().__init__(reason.value)
        self.verdict = verdict
        self.reason = reason
        self.detail = detail


class Verifier:
    """Serves join sessions against a trust store.

    Args:
        trust_store: Authorization policy.
        engine: Proof engine used for verification.
        transport: Relay to the Prover.
        ledger: Outstanding challenges. A fresh one is created if omitted.
        timeout_seconds: Bound on every wait for the Prover.
        clock: Unix-seconds clock for the ledger created when none is given.
    """

    DEFAULT_TIMEOUT_SECONDS = 30.0

    def __init__(
        self,
        trust_store: TrustStore,
        engine: ProofEngine,
        transport: Transport,
        ledger: Optional[ChallengeLedger] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got: {timeout_seconds}")
        self.trust_store = trust_store
        self.engine = engine
        self.transport = transport
        self.ledger = ledger if ledger is not None else ChallengeLedger(clock=clock)
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self.state = VerifierState.INIT
        self.sessions_served = 0
        self._reset()

    def _reset(self) -> None:
        self.state = VerifierState.INIT
        self._transitions: list[str] = [VerifierState.INIT.value]
        self._group: Optional[str] = None
        self._nonce: Optional[int] = None
        self._challenge_issued = False
        self._engine_invoked = False

    async def serve(self, sessions: int) -> list[VerifierOutcome]:
        """Serve ``sessions`` sessions back to back."""
        return [await self.serve_once() for _ in range(sessions)]

    async def serve_once(self) -> VerifierOutcome:
        """Run one session and return its outcome.

        At most one ``JoinResult`` is sent per session. Nothing is sent when
        the transport itself failed. A challenge issued by this session never
        outlives it: if it was not redeemed, it is retired on the way out.
        """
        self._reset()
        self.sessions_served += 1
        try:
            return await self._serve()
        except _SessionFailed as failure:
            return await self._finish_failed(failure)
        except TransportError as exc:
            logger.error(
                "Verifier session failed in state %s: %s", self.state.value, exc
            )
            return self._outcome(
                Verdict.SYSTEM_ERROR,
                reason=FailureReason.TRANSPORT_ERROR,
                error=f"{type(exc).__name__}: {exc}",
            )
        finally:
            if self._nonce is not None and self.ledger.retire(self._nonce):
                logger.info("Retired unredeemed challenge %d", self._nonce)

    async def _serve(self) -> VerifierOutcome:
        self._advance(VerifierState.AWAITING_REQUEST)
        data = await self.transport.receive(ChannelName.REQUEST, timeout=self.timeout_seconds)
        request = decode(JoinRequest, data)
        self._group = request.group_name

        self._advance(VerifierState.AUTHORIZING)
        trusted = self.trust_store.authorize(request)
        if trusted is None:
            raise _SessionFailed(
                Verdict.INVALID, FailureReason.AUTHORIZATION_DENIED, DETAIL_NOT_AUTHORIZED
            )
        logger.info("Authorized join of %s bound to %s", trusted.group_name, trusted.binding.short())

        try:
            self.engine.init()
            challenge = self.ledger.issue(trusted.binding)
        except ProofEngineError as exc:
            logger.error("Proof engine unavailable: %s", exc)
            raise _SessionFailed(
                Verdict.SYSTEM_ERROR, FailureReason.PROOF_ENGINE_ERROR, DETAIL_SYSTEM_ERROR
            ) from exc
        except CapacityExceededError as exc:
            logger.warning("Cannot challenge %s: %s", trusted.group_name, exc)
            raise _SessionFailed(
                Verdict.SYSTEM_ERROR, FailureReason.CAPACITY_EXCEEDED, DETAIL_SYSTEM_ERROR
            ) from exc

        self._nonce = challenge.nonce
        await self.transport.send(ChannelName.CHALLENGE, encode(challenge))
        self._challenge_issued = True
        self._advance(VerifierState.CHALLENGE_ISSUED)

        self._advance(VerifierState.AWAITING_PROOF)
        data = await self.transport.receive(ChannelName.PROOF, timeout=self.timeout_seconds)
        submission = decode(ProofSubmission, data)

        self._advance(VerifierState.VERIFYING)
        record = self._redeem(submission, trusted)
        if not self._check_proof(submission, trusted, record):
            logger.warning("Proof for challenge %d rejected", submission.nonce)
            raise _SessionFailed(Verdict.INVALID, FailureReason.PROOF_INVALID, DETAIL_PROOF_FAILED)

        logger.info("Admitted prover to %s", trusted.group_name)
        await self.transport.send(ChannelName.RESULT, encode(JoinResult.valid(trusted.group_name)))
        self._advance(VerifierState.COMPLETED)
        return self._outcome(Verdict.VALID, detail=trusted.group_name)

    def _redeem(self, submission: ProofSubmission, trusted: TrustBinding) -> ChallengeRecord:
        """Consume the challenge the submission answers.

        Only the challenge issued in this session can be redeemed here; a
        nonce from any other session is refused before the ledger is touched.
        """
        if submission.nonce != self._nonce:
            replayed = self.ledger.is_used(submission.nonce)
            logger.warning(
                "Proof answers challenge %d but this session issued %d",
                submission.nonce,
                self._nonce,
            )
            raise _SessionFailed(
                Verdict.INVALID,
                FailureReason.CHALLENGE_REPLAY if replayed else FailureReason.CHALLENGE_NOT_FOUND,
                DETAIL_PROOF_FAILED,
            )
        try:
            record = self.ledger.consume(submission.nonce, trusted.binding)
        except ChallengeReplayError as exc:
            logger.warning("Replayed challenge: %s", exc)
            raise _SessionFailed(
                Verdict.INVALID, FailureReason.CHALLENGE_REPLAY, DETAIL_PROOF_FAILED
            ) from exc
        except ChallengeExpiredError as exc:
            logger.warning("Late proof: %s", exc)
            raise _SessionFailed(
                Verdict.INVALID, FailureReason.CHALLENGE_EXPIRED, DETAIL_PROOF_FAILED
            ) from exc
        except ChallengeNotFoundError as exc:
            logger.warning("Unknown challenge: %s", exc)
            raise _SessionFailed(
                Verdict.INVALID, FailureReason.CHALLENGE_NOT_FOUND, DETAIL_PROOF_FAILED
            ) from exc

        if submission.binding is not None and not submission.binding.matches(trusted.binding):
            logger.warning("Proof for challenge %d names a different binding", submission.nonce)
            raise _SessionFailed(
                Verdict.INVALID, FailureReason.BINDING_MISMATCH, DETAIL_PROOF_FAILED
            )
        return record

    def _check_proof(
        self, submission: ProofSubmission, trusted: TrustBinding, record: ChallengeRecord
    ) -> bool:
        self._engine_invoked = True
        try:
            if trusted.binding.kind == BindingKind.ACL_ID:
                return self.engine.verify_membership_proof(
                    submission.proof, trusted.binding, record.nonce
                )
            # credentials are judged at the time the challenge was issued
            return self.engine.verify_credential_proof(
                submission.proof, trusted.binding, record.issued_at, record.nonce
            )
        except ProofEngineError as exc:
            logger.error("Proof engine failed during verification: %s", exc)
            raise _SessionFailed(
                Verdict.SYSTEM_ERROR, FailureReason.PROOF_ENGINE_ERROR, DETAIL_SYSTEM_ERROR
            ) from exc

    async def _finish_failed(self, failure: _SessionFailed) -> VerifierOutcome:
        try:
            await self.transport.send(ChannelName.RESULT, encode(JoinResult.invalid(failure.detail)))
        except TransportError as exc:
            logger.error("Could not deliver result: %s", exc)
            return self._outcome(
                Verdict.SYSTEM_ERROR,
                reason=failure.reason,
                detail=failure.detail,
                error=f"{type(exc).__name__}: {exc}",
            )
        if failure.verdict == Verdict.INVALID:
            self._advance(VerifierState.COMPLETED)
        logger.info(
            "Session for %s ended %s (%s)",
            self._group,
            failure.verdict.value,
            failure.reason.value,
        )
        return self._outcome(failure.verdict, reason=failure.reason, detail=failure.detail)

    def _advance(self, state: VerifierState) -> None:
        logger.debug("Verifier %s -> %s", self.state.value, state.value)
        self.state = state
        self._transitions.append(state.value)

    def _outcome(
        self,
        verdict: Verdict,
        reason: Optional[FailureReason] = None,
        detail: str = "",
        error: Optional[str] = None,
    ) -> VerifierOutcome:
        return VerifierOutcome(
            verdict=verdict,
            state=self.state.value,
            group_name=self._group,
            nonce=self._nonce,
            detail=detail,
            error=error,
            transitions=list(self._transitions),
            reason=reason,
            challenge_issued=self._challenge_issued,
            engine_invoked=self._engine_invoked,
        )


__all__ = ["VerifierState", "Verifier"]
