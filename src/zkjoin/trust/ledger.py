# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Challenge Ledger

Fixed-capacity table of outstanding challenges. Each challenge is bound to
the identity or issuer key it was issued for and can be consumed exactly
once. Consumed nonces are kept as tombstones so a second attempt is reported
as a replay rather than as an unknown nonce.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

from pydantic import BaseModel, Field

from zkjoin.exceptions import (
    CapacityExceededError,
    ChallengeExpiredError,
    ChallengeNotFoundError,
    ChallengeReplayError,
)
from zkjoin.identity import Identity
from zkjoin.messages import Challenge
from zkjoin.trust.nonce import NonceGenerator, SecureNonceGenerator

logger = logging.getLogger(__name__)


class ChallengeRecord(BaseModel):
    """Ledger entry for one issued challenge.

    Attributes:
        nonce: The challenge value.
        binding: Identity or issuer key the challenge is tied to.
        issued_at: Unix seconds at issuance.
        expires_at: Unix seconds after which the record no longer redeems.
        used: Set once, when the challenge is consumed. Terminal.
        active: True while the record is redeemable.
    """

    nonce: int
    binding: Identity
    issued_at: int
    expires_at: int
    used: bool = False
    active: bool = True

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class ChallengeLedger:
    """Outstanding challenges with exactly-once consumption.

    All mutations hold a single lock, so ``issue`` and ``consume`` are atomic
    with respect to each other across threads and tasks.

    Args:
        capacity: Number of challenges that may be outstanding at once.
        ttl_seconds: Lifetime of an issued challenge.
        nonce_generator: Source of nonces. Defaults to the secure generator.
        clock: Returns the current time in unix seconds.
        max_tombstones: How many consumed nonces to remember for replay
            detection; the oldest are forgotten first.
    """

    DEFAULT_CAPACITY = 10
    DEFAULT_TTL_SECONDS = 30
    DEFAULT_MAX_TOMBSTONES = 1024

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        nonce_generator: Optional[NonceGenerator] = None,
        clock: Callable[[], float] = time.time,
        max_tombstones: int = DEFAULT_MAX_TOMBSTONES,
    ) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got: {capacity}")
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got: {ttl_seconds}")
        if max_tombstones <= 0:
            raise ValueError(f"max_tombstones must be positive, got: {max_tombstones}")
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._nonces = (
            nonce_generator if nonce_generator is not None else SecureNonceGenerator()
        )
        self._clock = clock
        self._max_tombstones = max_tombstones
        self._slots: list[Optional[ChallengeRecord]] = [None] * capacity
        self._tombstones: OrderedDict[int, ChallengeRecord] = OrderedDict()
        self._lock = threading.Lock()

    def issue(self, binding: Identity) -> Challenge:
        """Create a challenge for ``binding`` and record it.

        Raises:
            CapacityExceededError: If every slot holds an unexpired challenge.
        """
        with self._lock:
            now = self._clock()
            self._purge_expired_locked(now)

            try:
                slot = self._slots.index(None)
            except ValueError:
                raise CapacityExceededError(
                    f"all {self.capacity} challenge slots are outstanding"
                ) from None

            nonce = self._fresh_nonce_locked()
            issued_at = int(now)
            self._slots[slot] = ChallengeRecord(
                nonce=nonce,
                binding=binding,
                issued_at=issued_at,
                expires_at=issued_at + self.ttl_seconds,
            )

        logger.debug("Issued challenge %d for %s in slot %d", nonce, binding.short(), slot)
        return Challenge(nonce=nonce, binding=binding, issued_at=issued_at)

    def consume(self, nonce: int, binding: Identity) -> ChallengeRecord:
        """Redeem the challenge ``nonce`` issued for ``binding``.

        Returns:
            The consumed record, now ``used`` and inactive.

        Raises:
            ChallengeExpiredError: The matching record outlived its TTL.
            ChallengeReplayError: The nonce was already consumed.
            ChallengeNotFoundError: No active record matches both the nonce
                and the binding.
        """
        with self._lock:
            now = self._clock()
            for index, record in enumerate(self._slots):
                if record is None or not record.active:
                    continue
                if record.nonce != nonce or not record.binding.matches(binding):
                    continue
                self._slots[index] = None
                if record.is_expired(now):
                    record.active = False
                    raise ChallengeExpiredError(f"challenge {nonce} expired")
                record.used = True
                record.active = False
                self._remember_locked(record)
                return record

            if nonce in self._tombstones:
                raise ChallengeReplayError(f"challenge {nonce} already consumed")

        raise ChallengeNotFoundError(f"no active challenge {nonce} for this binding")

    def retire(self, nonce: int) -> bool:
        """Withdraw the active challenge ``nonce`` without redeeming it.

        The slot is freed and the nonce is tombstoned, so a proof that
        arrives later is reported as a replay. Returns False when no active
        record holds ``nonce``.
        """
        with self._lock:
            for index, record in enumerate(self._slots):
                if record is None or record.nonce != nonce:
                    continue
                self._slots[index] = None
                record.used = True
                record.active = False
                self._remember_locked(record)
                logger.debug("Retired challenge %d", nonce)
                return True
        return False

    def is_used(self, nonce: int) -> bool:
        """Whether ``nonce`` is remembered as consumed."""
        with self._lock:
            return nonce in self._tombstones

    def outstanding(self) -> int:
        """Number of active (possibly expired, not yet purged) challenges."""
        with self._lock:
            return sum(1 for record in self._slots if record is not None)

    def purge_expired(self) -> int:
        """Free the slots of expired challenges. Returns how many were freed."""
        with self._lock:
            return self._purge_expired_locked(self._clock())

    def _purge_expired_locked(self, now: float) -> int:
        freed = 0
        for index, record in enumerate(self._slots):
            if record is not None and record.is_expired(now):
                record.active = False
                self._slots[index] = None
                freed += 1
        if freed:
            logger.debug("Purged %d expired challenges", freed)
        return freed

    def _fresh_nonce_locked(self) -> int:
        active = {record.nonce for record in self._slots if record is not None}
        while True:
            nonce = self._nonces.next_nonce()
            if nonce not in active and nonce not in self._tombstones:
                return nonce
            logger.debug("Nonce %d collides with a live or consumed challenge, redrawing", nonce)

    def _remember_locked(self, record: ChallengeRecord) -> None:
        self._tombstones[record.nonce] = record
        while len(self._tombstones) > self._max_tombstones:
            self._tombstones.popitem(last=False)


__all__ = ["ChallengeRecord", "ChallengeLedger"]
