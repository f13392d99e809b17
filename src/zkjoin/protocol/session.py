# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""Run one Prover against one Verifier over a shared relay."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import BaseModel, Field

from zkjoin.attestation import AttestationReport, Attestor
from zkjoin.protocol.outcome import ProverOutcome, VerifierOutcome
from zkjoin.protocol.prover import Prover
from zkjoin.protocol.verifier import Verifier
from zkjoin.transport.relay import InMemoryRelay

logger = logging.getLogger(__name__)


class SessionReport(BaseModel):
    """Both sides of one join session."""

    prover: ProverOutcome
    verifier: VerifierOutcome
    attestations: list[AttestationReport] = Field(default_factory=list)
    relay_stats: dict[str, dict[str, int]] = Field(default_factory=dict)

    @property
    def admitted(self) -> bool:
        """Both principals agree the Prover joined."""
        return self.prover.is_valid and self.verifier.is_valid


async def run_session(
    prover: Prover,
    verifier: Verifier,
    prover_attestor: Optional[Attestor] = None,
    verifier_attestor: Optional[Attestor] = None,
) -> SessionReport:
    """Drive both principals concurrently until each reaches an outcome.

    Attestations are added only for sides that reached ``completed``.
    """
    prover_outcome, verifier_outcome = await asyncio.gather(
        prover.run(), verifier.serve_once()
    )
    logger.info(
        "Session finished: prover=%s verifier=%s",
        prover_outcome.verdict.value,
        verifier_outcome.verdict.value,
    )

    attestations = []
    for attestor, outcome, subject in (
        (prover_attestor, prover_outcome, prover),
        (verifier_attestor, verifier_outcome, verifier),
    ):
        if attestor is None:
            continue
        if not outcome.completed:
            logger.warning(
                "Skipping %s attestation: stopped in %s", attestor.principal, outcome.state
            )
            continue
        attestations.append(attestor.attest(outcome, subject))

    stats = {}
    if isinstance(prover.transport, InMemoryRelay):
        stats = prover.transport.stats()

    return SessionReport(
        prover=prover_outcome,
        verifier=verifier_outcome,
        attestations=attestations,
        relay_stats=stats,
    )


__all__ = ["SessionReport", "run_session"]
