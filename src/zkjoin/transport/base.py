# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""Abstract transport interface for ZkJoin principals.

Defines the contract a relay must implement to move opaque payloads
between a Prover and a Verifier. A relay is a transport, not a participant:
it never parses, authorizes or rewrites what it carries.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ChannelName(str, Enum):
    """The four logical channels of a join session."""

    REQUEST = "request"
    CHALLENGE = "challenge"
    PROOF = "proof"
    RESULT = "result"


class TransportState(str, Enum):
    """Transport lifecycle state."""

    OPEN = "open"
    CLOSED = "closed"


@dataclass
class RelayConfig:
    """Configuration for a relay transport.

    Args:
        capacity: Messages each channel buffers before ``send`` fails.
        timeout_seconds: Default receive timeout. None means wait forever.
        max_payload_bytes: Largest payload a channel accepts.
    """

    capacity: int = 1
    timeout_seconds: Optional[float] = 30.0
    max_payload_bytes: int = 8192

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ValueError(f"capacity must be positive, got: {self.capacity}")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError(
                f"timeout_seconds must be positive, got: {self.timeout_seconds}"
            )
        if self.max_payload_bytes <= 0:
            raise ValueError(
                f"max_payload_bytes must be positive, got: {self.max_payload_bytes}"
            )


class Transport(ABC):
    """Abstract base class for relay transports.

    All implementations deliver payloads byte-exact and in send order
    within a channel. No ordering is promised across channels.
    """

    def __init__(self, config: Optional[RelayConfig] = None) -> None:
        """Initialize transport with configuration."""
        self.config = config or RelayConfig()
        self._state = TransportState.OPEN

    @property
    def state(self) -> TransportState:
        """Current transport state."""
        return self._state

    @property
    def is_open(self) -> bool:
        """Whether the transport still accepts traffic."""
        return self._state == TransportState.OPEN

    @abstractmethod
    async def send(self, channel: ChannelName, payload: bytes) -> None:
        """Enqueue a payload on a channel without waiting.

        Args:
            channel: Destination channel.
            payload: Opaque bytes.

        Raises:
            TransportError: If the channel is full or closed.
            MalformedMessageError: If the payload is not bytes or too large.
        """

    @abstractmethod
    async def receive(
        self, channel: ChannelName, timeout: Optional[float] = None
    ) -> bytes:
        """Wait for the next payload on a channel.

        Args:
            channel: Channel to read from.
            timeout: Maximum seconds to wait. None means wait forever.

        Returns:
            The payload, exactly as sent.

        Raises:
            TransportTimeoutError: If timeout expires before a message arrives.
            TransportClosedError: If the channel is closed and drained.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close every channel and wake pending receivers."""


__all__ = [
    "ChannelName",
    "RelayConfig",
    "Transport",
    "TransportState",
]
