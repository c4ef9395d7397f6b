"""Cross-context synchronization."""

from .channel import Channel, InMemoryBroadcastHub, InMemoryChannel, RedisChannel
from .manager import SyncManager

__all__ = [
    "Channel",
    "InMemoryBroadcastHub",
    "InMemoryChannel",
    "RedisChannel",
    "SyncManager",
]
