# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""In-memory relay between two principals.

Each channel is a bounded FIFO guarded by an ``asyncio.Condition``:
receivers block on the condition instead of polling, and a receive with a
timeout surfaces ``TransportTimeoutError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Optional

from zkjoin.exceptions import (
    MalformedMessageError,
    TransportClosedError,
    TransportError,
    TransportTimeoutError,
)

from .base import ChannelName, RelayConfig, Transport, TransportState

logger = logging.getLogger(__name__)

_DEFAULT = object()


class Channel:
    """One logical FIFO channel.

    Args:
        name: Channel name, used in errors and logs.
        capacity: Messages buffered before ``send`` fails.
        max_payload_bytes: Largest accepted payload.
    """

    def __init__(self, name: ChannelName, capacity: int = 1, max_payload_bytes: int = 8192) -> None:
        self.name = name
        self.capacity = capacity
        self.max_payload_bytes = max_payload_bytes
        self._messages: deque[bytes] = deque()
        self._cond = asyncio.Condition()
        self._closed = False
        self.sent = 0
        self.received = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._messages)

    async def send(self, payload: bytes) -> None:
        """Append ``payload``. Never waits for a receiver."""
        if not isinstance(payload, (bytes, bytearray, memoryview)):
            raise MalformedMessageError(
                f"{self.name.value} channel carries bytes, got {type(payload).__name__}"
            )
        data = bytes(payload)
        if len(data) > self.max_payload_bytes:
            raise MalformedMessageError(
                f"{self.name.value} payload of {len(data)} bytes exceeds {self.max_payload_bytes}"
            )
        async with self._cond:
            if self._closed:
                raise TransportClosedError(f"{self.name.value} channel is closed")
            if len(self._messages) >= self.capacity:
                raise TransportError(f"{self.name.value} channel is full")
            self._messages.append(data)
            self.sent += 1
            self._cond.notify()
        logger.debug("Relay %s <- %d bytes", self.name.value, len(data))

    async def receive(self, timeout: Optional[float] = None) -> bytes:
        """Pop the oldest payload, waiting up to ``timeout`` seconds."""
        async with self._cond:
            try:
                await asyncio.wait_for(
                    self._cond.wait_for(lambda: bool(self._messages) or self._closed),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                raise TransportTimeoutError(
                    f"no message on {self.name.value} channel within {timeout}s"
                ) from None
            if self._messages:
                data = self._messages.popleft()
                self.received += 1
                logger.debug("Relay %s -> %d bytes", self.name.value, len(data))
                return data
        raise TransportClosedError(f"{self.name.value} channel is closed")

    async def close(self) -> None:
        async with self._cond:
            self._closed = True
            self._cond.notify_all()


class InMemoryRelay(Transport):
    """Relay with four independent channels (request, challenge, proof, result).

    Example:
        >>> relay = InMemoryRelay(RelayConfig(timeout_seconds=5))
        >>> await relay.send(ChannelName.REQUEST, b"...")
        >>> await relay.receive(ChannelName.REQUEST)
        b'...'
    """

    def __init__(self, config: Optional[RelayConfig] = None) -> None:
        super().__init__(config)
        self._channels: dict[ChannelName, Channel] = {
            name: Channel(name, self.config.capacity, self.config.max_payload_bytes)
            for name in ChannelName
        }

    def channel(self, name: ChannelName | str) -> Channel:
        """Direct access to one channel."""
        return self._channels[ChannelName(name)]

    async def send(self, channel: ChannelName, payload: bytes) -> None:
        if not self.is_open:
            raise TransportClosedError("relay is closed")
        await self.channel(channel).send(payload)

    async def receive(self, channel: ChannelName, timeout: Any = _DEFAULT) -> bytes:
        if timeout is _DEFAULT:
            timeout = self.config.timeout_seconds
        return await self.channel(channel).receive(timeout)

    async def close(self) -> None:
        self._state = TransportState.CLOSED
        for channel in self._channels.values():
            await channel.close()
        logger.debug("Relay closed")

    def stats(self) -> dict[str, dict[str, int]]:
        """Per-channel sent/received/pending counters."""
        return {
            name.value: {
                "sent": ch.sent,
                "received": ch.received,
                "pending": len(ch),
            }
            for name, ch in self._channels.items()
        }


__all__ = ["Channel", "InMemoryRelay"]
