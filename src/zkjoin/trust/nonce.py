# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Nonce Generators

64-bit challenge values. ``SecureNonceGenerator`` draws from the OS CSPRNG
and is the default. ``LcgNonceGenerator`` reproduces the enclave-internal
placeholder that mixes a tick counter and process layout through a
multiplicative congruential step; its output is predictable and it exists
for demonstration and comparison only.
"""

from __future__ import annotations

import itertools
import logging
import secrets
import time
from abc import ABC, abstractmethod

from zkjoin.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

MASK_64 = 2**64 - 1
LCG_MULTIPLIER = 6364136223846793005
LCG_INCREMENT = 1442695040888963407


class NonceGenerator(ABC):
    """Produces 64-bit nonces.

    Generators keep no history. Uniqueness against outstanding and consumed
    challenges is enforced by the ledger that draws from them.
    """

    def next_nonce(self) -> int:
        """Return a nonce in ``[0, 2**64)``."""
        return self._draw() & MASK_64

    @abstractmethod
    def _draw(self) -> int:
        """Produce one raw 64-bit value."""


class SecureNonceGenerator(NonceGenerator):
    """Nonces from :func:`secrets.randbits`."""

    def _draw(self) -> int:
        return secrets.randbits(64)


class LcgNonceGenerator(NonceGenerator):
    """Placeholder generator seeded from low-quality entropy.

    Seeds from a clock tick, the generator's ``id()`` and the ``id()`` of a
    function, then advances ``state * a + c mod 2**64`` on every call and
    mixes in a counter and a fresh tick. Anyone observing a few outputs can
    predict the rest; never use it where an attacker may see nonces.

    Args:
        seed: Initial state to use instead of layout entropy.
    """

    def __init__(self, seed: int | None = None) -> None:
        self._ticks = itertools.count(time.monotonic_ns())
        tick = next(self._ticks)
        if seed is None:
            addr = id(self)
            state = tick ^ ((addr << 16) & MASK_64) ^ (addr >> 16)
            state = (state * LCG_MULTIPLIER + LCG_INCREMENT) & MASK_64
            state ^= id(LcgNonceGenerator._draw) & MASK_64
        else:
            state = seed & MASK_64
        self._state = state
        self._counter = tick & MASK_64
        logger.warning("LcgNonceGenerator is predictable; use SecureNonceGenerator")

    def _draw(self) -> int:
        self._state = (self._state * LCG_MULTIPLIER + LCG_INCREMENT) & MASK_64
        self._counter = (self._counter + 1) & MASK_64
        return self._state ^ self._counter ^ (next(self._ticks) & MASK_64)


def create_nonce_generator(kind: str = "secure") -> NonceGenerator:
    """Build a generator by configuration name (``secure`` or ``lcg``)."""
    if kind == "secure":
        return SecureNonceGenerator()
    if kind == "lcg":
        return LcgNonceGenerator()
    raise ConfigurationError(f"unknown nonce generator: {kind!r}")


__all__ = [
    "NonceGenerator",
    "SecureNonceGenerator",
    "LcgNonceGenerator",
    "create_nonce_generator",
]
