"""Cross-context broadcast channels.

A channel delivers each published message to every *other* subscriber;
the publisher does not hear its own messages on the in-memory hub. The
redis channel does echo them back, so receivers also filter by sender id.
"""

import logging
import threading
from collections.abc import Callable
from typing import Protocol

import redis
from pydantic import ValidationError

from backend.itinerary.models.sync import SyncMessage

logger = logging.getLogger(__name__)

MessageCallback = Callable[[SyncMessage], None]


class Channel(Protocol):
    """Publish/subscribe transport for sync messages."""

    def publish(self, message: SyncMessage) -> None:
        """Broadcast a message to other contexts."""
        ...

    def subscribe(self, callback: MessageCallback) -> None:
        """Register a callback for messages from other contexts."""
        ...

    def close(self) -> None:
        """Stop delivery and release resources."""
        ...


class InMemoryBroadcastHub:
    """Process-local hub; channels created from one hub see each other."""

    def __init__(self) -> None:
        self._channels: list["InMemoryChannel"] = []
        self._lock = threading.Lock()

    def channel(self) -> "InMemoryChannel":
        ch = InMemoryChannel(self)
        with self._lock:
            self._channels.append(ch)
        return ch

    def _deliver(self, sender: "InMemoryChannel", message: SyncMessage) -> None:
        with self._lock:
            targets = [c for c in self._channels if c is not sender]
        for target in targets:
            target._receive(message)

    def _detach(self, channel: "InMemoryChannel") -> None:
        with self._lock:
            if channel in self._channels:
                self._channels.remove(channel)


class InMemoryChannel:
    """Synchronous channel attached to an InMemoryBroadcastHub."""

    def __init__(self, hub: InMemoryBroadcastHub) -> None:
        self._hub = hub
        self._callbacks: list[MessageCallback] = []
        self._closed = False

    def publish(self, message: SyncMessage) -> None:
        if self._closed:
            return
        self._hub._deliver(self, message)

    def subscribe(self, callback: MessageCallback) -> None:
        self._callbacks.append(callback)

    def _receive(self, message: SyncMessage) -> None:
        for callback in list(self._callbacks):
            callback(message)

    def close(self) -> None:
        self._closed = True
        self._callbacks.clear()
        self._hub._detach(self)


class RedisChannel:
    """Channel over redis pub/sub with a background listener thread."""

    def __init__(self, client: redis.Redis, channel_name: str) -> None:
        self._client = client
        self._channel_name = channel_name
        self._callbacks: list[MessageCallback] = []
        self._pubsub = None
        self._thread = None
        self._lock = threading.Lock()

    @classmethod
    def from_url(cls, url: str, channel_name: str) -> "RedisChannel":
        return cls(redis.from_url(url, decode_responses=True), channel_name)

    def publish(self, message: SyncMessage) -> None:
        self._client.publish(self._channel_name, message.model_dump_json())

    def subscribe(self, callback: MessageCallback) -> None:
        with self._lock:
            self._callbacks.append(callback)
            if self._pubsub is None:
                self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
                self._pubsub.subscribe(**{self._channel_name: self._handle})
                self._thread = self._pubsub.run_in_thread(sleep_time=0.1, daemon=True)

    def _handle(self, raw: dict) -> None:
        try:
            message = SyncMessage.model_validate_json(raw["data"])
        except (ValidationError, KeyError, TypeError) as e:
            logger.warning(
                "Ignoring malformed sync message",
                extra={"channel": self._channel_name, "error": str(e)},
            )
            return
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback(message)

    def close(self) -> None:
        with self._lock:
            self._callbacks.clear()
            if self._thread is not None:
                self._thread.stop()
                self._thread = None
            if self._pubsub is not None:
                self._pubsub.close()
                self._pubsub = None
