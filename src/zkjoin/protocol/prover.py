# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Prover State Machine

Drives a Prover through request, challenge, proof and result:

    init -> identity_derived -> requested -> challenge_received
         -> proof_generated -> submitted -> completed

Only derived public values and proofs are ever handed to the transport.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Union

from zkjoin.engine.base import ProofEngine
from zkjoin.exceptions import (
    ProofEngineError,
    ProofGenerationError,
    ProtocolError,
    TransportError,
)
from zkjoin.identity import BindingKind, Identity, VerifiableCredential
from zkjoin.messages import Challenge, JoinRequest, JoinResult, ProofSubmission, decode, encode
from zkjoin.protocol.outcome import (
    DETAIL_NOT_AUTHORIZED,
    DETAIL_SYSTEM_ERROR,
    ProverOutcome,
    Verdict,
)
from zkjoin.transport.base import ChannelName, Transport

logger = logging.getLogger(__name__)


class ProverState(str, Enum):
    INIT = "init"
    IDENTITY_DERIVED = "identity_derived"
    REQUESTED = "requested"
    CHALLENGE_RECEIVED = "challenge_received"
    PROOF_GENERATED = "proof_generated"
    SUBMITTED = "submitted"
    COMPLETED = "completed"


class Prover(ABC):
    """Shared Prover flow; subclasses supply the credential-specific steps.

    Args:
        group_name: Group to ask to join.
        engine: Proof engine used for proof generation.
        transport: Relay to the Verifier.
        timeout_seconds: Bound on every wait for the Verifier.
    """

    DEFAULT_TIMEOUT_SECONDS = 30.0

    def __init__(
        self,
        group_name: str,
        engine: ProofEngine,
        transport: Transport,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got: {timeout_seconds}")
        self.group_name = group_name
        self.engine = engine
        self.transport = transport
        self.timeout_seconds = timeout_seconds
        self.state = ProverState.INIT
        self.identity: Optional[Identity] = None
        self._transitions: list[str] = [ProverState.INIT.value]
        self._nonce: Optional[int] = None
        self._proof_generated = False

    # -- template steps ------------------------------------------------------

    @abstractmethod
    def _build_request(self) -> JoinRequest:
        """Derive public material and build the join request."""

    @abstractmethod
    def _precheck(self, challenge: Challenge) -> Optional[str]:
        """Return a reason if the challenge does not fit our credential."""

    @abstractmethod
    def _generate_proof(self, challenge: Challenge) -> bytes:
        """Ask the proof engine for a proof bound to the challenge."""

    # -- driver --------------------------------------------------------------

    async def run(self) -> ProverOutcome:
        """Run the protocol once and return how it ended.

        Authentication failures end in ``invalid``; transport and engine
        failures end in ``system_error``. Nothing is raised for either.
        """
        if self.state != ProverState.INIT:
            raise ProtocolError("a Prover runs exactly one session")
        try:
            return await self._run()
        except (TransportError, ProofEngineError) as exc:
            logger.error(
                "Prover session for %s failed in state %s: %s",
                self.group_name,
                self.state.value,
                exc,
            )
            return self._outcome(Verdict.SYSTEM_ERROR, error=f"{type(exc).__name__}: {exc}")

    async def _run(self) -> ProverOutcome:
        self.engine.init()
        request = self._build_request()
        self._advance(ProverState.IDENTITY_DERIVED)

        await self.transport.send(ChannelName.REQUEST, encode(request))
        self._advance(ProverState.REQUESTED)
        logger.info("Requested to join %s", self.group_name)

        reply = await self._await_challenge()
        if reply is None:
            logger.info("No challenge for %s: authorization denied", self.group_name)
            return self._complete(Verdict.INVALID, DETAIL_NOT_AUTHORIZED)
        if isinstance(reply, JoinResult):
            logger.info("Verifier answered %s before any challenge", reply.outcome.value)
            return self._rejected(reply.detail or DETAIL_NOT_AUTHORIZED)

        challenge = reply
        self._nonce = challenge.nonce
        self._advance(ProverState.CHALLENGE_RECEIVED)
        logger.debug("Received challenge %d bound to %s", challenge.nonce, challenge.binding.short())

        mismatch = self._precheck(challenge)
        if mismatch:
            logger.warning("Challenge %d rejected locally: %s", challenge.nonce, mismatch)
            await self._abandon()
            return self._complete(Verdict.INVALID, mismatch)

        try:
            proof = self._generate_proof(challenge)
        except ProofGenerationError as exc:
            logger.warning("Proof generation refused for challenge %d: %s", challenge.nonce, exc)
            await self._abandon()
            return self._complete(Verdict.INVALID, "proof generation failed")
        self._proof_generated = True
        self._advance(ProverState.PROOF_GENERATED)

        submission = ProofSubmission(nonce=challenge.nonce, proof=proof, binding=challenge.binding)
        await self.transport.send(ChannelName.PROOF, encode(submission))
        self._advance(ProverState.SUBMITTED)

        data = await self.transport.receive(ChannelName.RESULT, timeout=self.timeout_seconds)
        result = decode(JoinResult, data)
        if result.is_valid and result.detail == self.group_name:
            logger.info("Admitted to %s", self.group_name)
            return self._complete(Verdict.VALID, result.detail)
        if result.is_valid:
            logger.warning("Admitted to unexpected group %r", result.detail)
            return self._complete(Verdict.INVALID, "unexpected group")
        logger.info("Join of %s rejected: %s", self.group_name, result.detail)
        return self._rejected(result.detail)

    async def _await_challenge(self) -> Union[Challenge, JoinResult, None]:
        """Wait for a challenge, or for a verdict sent in its place."""
        challenge_task = asyncio.ensure_future(
            self.transport.receive(ChannelName.CHALLENGE, timeout=self.timeout_seconds)
        )
        result_task = asyncio.ensure_future(
            self.transport.receive(ChannelName.RESULT, timeout=self.timeout_seconds)
        )
        try:
            done, _ = await asyncio.wait(
                {challenge_task, result_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (challenge_task, result_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(challenge_task, result_task, return_exceptions=True)

        if result_task in done and result_task.exception() is None:
            return decode(JoinResult, result_task.result())
        if challenge_task in done:
            data = challenge_task.result()
            if not data:
                return None
            return decode(Challenge, data)
        raise result_task.exception()

    async def _abandon(self) -> None:
        # no abort message exists; closing the relay releases the Verifier
        await self.transport.close()

    # -- bookkeeping ---------------------------------------------------------

    def _advance(self, state: ProverState) -> None:
        logger.debug("Prover %s -> %s", self.state.value, state.value)
        self.state = state
        self._transitions.append(state.value)

    def _complete(self, verdict: Verdict, detail: str) -> ProverOutcome:
        self._advance(ProverState.COMPLETED)
        return self._outcome(verdict, detail=detail)

    def _rejected(self, detail: str) -> ProverOutcome:
        if detail == DETAIL_SYSTEM_ERROR:
            return self._outcome(Verdict.SYSTEM_ERROR, detail=detail, error="verifier reported a system error")
        return self._complete(Verdict.INVALID, detail)

    def _outcome(self, verdict: Verdict, detail: str = "", error: Optional[str] = None) -> ProverOutcome:
        return ProverOutcome(
            verdict=verdict,
            state=self.state.value,
            group_name=self.group_name,
            nonce=self._nonce,
            detail=detail,
            error=error,
            transitions=list(self._transitions),
            proof_generated=self._proof_generated,
        )


class AclProver(Prover):
    """Prover holding a secret whose hash is on the Verifier's ACL.

    Args:
        secret: Private material. Never leaves this object.
    """

    def __init__(self, secret: bytes, group_name: str, engine: ProofEngine, transport: Transport, **kwargs) -> None:
        super().__init__(group_name, engine, transport, **kwargs)
        if not secret:
            raise ValueError("secret must not be empty")
        self._secret = secret

    def _build_request(self) -> JoinRequest:
        self.identity = self.engine.derive_public_identity(self._secret)
        logger.info("Derived public identity %s", self.identity.short())
        return JoinRequest(group_name=self.group_name, identity=self.identity)

    def _precheck(self, challenge: Challenge) -> Optional[str]:
        if challenge.binding.kind != BindingKind.ACL_ID:
            return "challenge is not bound to an ACL identity"
        if self.identity is None or not challenge.binding.matches(self.identity):
            return "challenge is bound to a different identity"
        return None

    def _generate_proof(self, challenge: Challenge) -> bytes:
        return self.engine.generate_membership_proof(self._secret, challenge.binding, challenge.nonce)


class CredentialProver(Prover):
    """Prover holding a verifiable credential from some issuer.

    The join request names only the group; the Verifier never learns who
    the holder is.
    """

    def __init__(
        self,
        credential: VerifiableCredential,
        group_name: str,
        engine: ProofEngine,
        transport: Transport,
        **kwargs,
    ) -> None:
        super().__init__(group_name, engine, transport, **kwargs)
        self._credential = credential

    def _build_request(self) -> JoinRequest:
        return JoinRequest(group_name=self.group_name)

    def _precheck(self, challenge: Challenge) -> Optional[str]:
        issuer = challenge.binding
        if issuer.kind != BindingKind.ISSUER_KEY:
            return "challenge is not bound to an issuer key"
        if not self.engine.verify_credential_signature(self._credential, issuer):
            return "credential is not issued by the challenged issuer"
        if challenge.issued_at < self._credential.issue_date:
            return "credential is not yet active"
        if challenge.issued_at > self._credential.expiry_date:
            return "credential has expired"
        return None

    def _generate_proof(self, challenge: Challenge) -> bytes:
        return self.engine.generate_credential_proof(
            self._credential, challenge.binding, challenge.issued_at, challenge.nonce
        )


__all__ = ["ProverState", "Prover", "AclProver", "CredentialProver"]
