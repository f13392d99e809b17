"""ZkJoin Transport Layer.

Moves opaque payloads between principals:
- **Transport**: abstract relay contract.
- **InMemoryRelay**: four bounded FIFO channels inside one event loop.
"""

from .base import ChannelName, RelayConfig, Transport, TransportState
from .relay import Channel, InMemoryRelay

__all__ = [
    # Base
    "Transport",
    "TransportState",
    "ChannelName",
    "RelayConfig",
    # In-memory relay
    "Channel",
    "InMemoryRelay",
]
