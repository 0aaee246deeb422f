"""Privileged-side event bus."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

import structlog

from bridgebus.bridge.adapter import BridgedEventBus
from bridgebus.bridge.channel import EventChannel
from bridgebus.core.events.models import EventSource
from bridgebus.core.events.types import EventType
from bridgebus.core.models.config import (
    BackendBridgeConfig,
    BackendBusConfig,
    BridgeConfig,
    BusConfig,
)

if TYPE_CHECKING:
    from bridgebus.bridge.channel import BridgeChannel
    from bridgebus.core.models.config import Settings

logger = structlog.get_logger(__name__)


class BackendEventBus(BridgedEventBus):
    """Event bus for the privileged process.

    Sends local events to sandboxed peers on ``event:receive`` and listens
    for their events on ``event:emit``.
    """

    side: ClassVar[str] = "backend"
    default_event_source: ClassVar[EventSource] = EventSource.BACKEND
    outbound_channel: ClassVar[EventChannel] = EventChannel.RECEIVE
    inbound_channel: ClassVar[EventChannel] = EventChannel.EMIT

    def __init__(
        self,
        channel: BridgeChannel | None = None,
        config: BusConfig | None = None,
        bridge: BridgeConfig | None = None,
    ) -> None:
        super().__init__(
            channel,
            config or BackendBusConfig(),
            bridge or BackendBridgeConfig(),
        )

    # App lifecycle notifications

    async def notify_initialized(self, version: str) -> None:
        await self.emit(EventType.APP_INITIALIZED, {"version": version})

    async def notify_ready(self) -> None:
        await self.emit(EventType.APP_READY)

    async def notify_before_quit(self) -> None:
        await self.emit(EventType.APP_BEFORE_QUIT)

    async def notify_quit(self) -> None:
        """Announce quit, then flush and shut the bus down."""
        await self.emit(EventType.APP_QUIT)
        await self.shutdown()
        logger.info("Backend event bus shut down")


def create_backend_bus(
    channel: BridgeChannel | None = None,
    settings: Settings | None = None,
) -> BackendEventBus:
    """Create a privileged-side bus from application settings."""
    if settings is None:
        return BackendEventBus(channel)
    return BackendEventBus(channel, settings.backend, settings.backend_bridge)
