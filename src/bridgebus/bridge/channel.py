"""Bridging channel contract and an in-memory implementation."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import structlog

from bridgebus.core.errors import ChannelClosedError, ChannelUnavailableError

logger = structlog.get_logger(__name__)

ChannelCallback = Callable[[dict[str, Any]], None]


class EventChannel(str, Enum):
    """Named channels carried over a bridge."""

    # frontend -> backend event forward
    EMIT = "event:emit"
    # backend -> frontend event forward
    RECEIVE = "event:receive"
    SUBSCRIBE = "event:subscribe"
    UNSUBSCRIBE = "event:unsubscribe"
    # produced locally by host channels when a peer goes away
    DISCONNECT = "event:disconnect"


@runtime_checkable
class BridgeChannel(Protocol):
    """Transport between the two process sides.

    Messages are JSON-compatible dicts. Per-channel ordering is preserved
    and delivery is at most once.
    """

    @property
    def is_available(self) -> bool: ...

    async def open(self) -> None: ...

    async def send(self, channel: str, message: dict[str, Any]) -> None: ...

    def on_receive(self, channel: str, callback: ChannelCallback) -> Callable[[], None]: ...

    async def close(self) -> None: ...


class ChannelListeners:
    """Per-channel listener registry shared by channel implementations."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[ChannelCallback]] = {}

    def add(self, channel: str, callback: ChannelCallback) -> Callable[[], None]:
        """Register a listener and return its remover."""
        key = str(getattr(channel, "value", channel))
        self._listeners.setdefault(key, []).append(callback)

        def remove() -> None:
            callbacks = self._listeners.get(key)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                if not callbacks:
                    del self._listeners[key]

        return remove

    def dispatch(self, channel: str, message: dict[str, Any]) -> None:
        """Deliver ``message`` to every listener on ``channel``."""
        for callback in list(self._listeners.get(channel, [])):
            try:
                callback(message)
            except Exception as e:
                logger.exception("Channel listener error", channel=channel, error=str(e))

    def count(self, channel: str | None = None) -> int:
        """Number of listeners, optionally for one channel."""
        if channel is not None:
            return len(self._listeners.get(channel, []))
        return sum(len(callbacks) for callbacks in self._listeners.values())

    def clear(self) -> None:
        self._listeners.clear()


class InMemoryChannel:
    """One end of a connected in-process channel pair.

    Every message is copied through a JSON round trip and delivered on the
    next event loop iteration, so peers never share objects.
    """

    def __init__(self, name: str) -> None:
        """
        Initialize one channel end.

        Args:
            name: Identity of this end; reported to the peer on close
        """
        self.name = name
        self._peer: InMemoryChannel | None = None
        self._listeners = ChannelListeners()
        self._opened = False
        self._closed = False

    def connect(self, peer: InMemoryChannel) -> None:
        """Link two ends together."""
        self._peer = peer
        peer._peer = self

    @property
    def is_available(self) -> bool:
        return self._peer is not None and not self._closed

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    async def open(self) -> None:
        if not self.is_available:
            raise ChannelUnavailableError(f"Channel {self.name!r} has no connected peer")
        self._opened = True

    async def send(self, channel: str, message: dict[str, Any]) -> None:
        if not self.is_open or self._peer is None:
            raise ChannelClosedError(f"Channel {self.name!r} is not open")
        data = json.loads(json.dumps(message))
        self._peer._deliver(str(getattr(channel, "value", channel)), data)

    def on_receive(self, channel: str, callback: ChannelCallback) -> Callable[[], None]:
        return self._listeners.add(channel, callback)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        if self._peer is not None:
            self._peer._deliver(EventChannel.DISCONNECT.value, {"peer_id": self.name})

    def _deliver(self, channel: str, message: dict[str, Any]) -> None:
        if self._closed:
            return
        asyncio.get_running_loop().call_soon(self._listeners.dispatch, channel, message)


def create_channel_pair(
    backend_name: str = "backend",
    frontend_name: str = "main",
) -> tuple[InMemoryChannel, InMemoryChannel]:
    """
    Create two connected channel ends.

    Args:
        backend_name: Identity of the privileged end
        frontend_name: Identity of the sandboxed end (its peer id)

    Returns:
        ``(backend_end, frontend_end)``
    """
    backend = InMemoryChannel(backend_name)
    frontend = InMemoryChannel(frontend_name)
    backend.connect(frontend)
    return backend, frontend
