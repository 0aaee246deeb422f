"""Sandboxed-side event bus."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from bridgebus.bridge.adapter import BridgedEventBus
from bridgebus.bridge.channel import EventChannel
from bridgebus.core.events.models import EventSource

if TYPE_CHECKING:
    from bridgebus.bridge.channel import BridgeChannel
    from bridgebus.core.models.config import Settings


class FrontendEventBus(BridgedEventBus):
    """Event bus for a sandboxed process.

    Sends local events on ``event:emit``, receives the privileged side's
    events on ``event:receive`` and announces its subscriptions so the
    privileged side knows what this peer listens for.
    """

    side: ClassVar[str] = "frontend"
    default_event_source: ClassVar[EventSource] = EventSource.FRONTEND
    outbound_channel: ClassVar[EventChannel] = EventChannel.EMIT
    inbound_channel: ClassVar[EventChannel] = EventChannel.RECEIVE

    @property
    def peer_id(self) -> str:
        """Identity announced to the privileged side."""
        return self.bridge_config.peer_id


def create_frontend_bus(
    channel: BridgeChannel | None = None,
    settings: Settings | None = None,
) -> FrontendEventBus:
    """Create a sandboxed-side bus from application settings."""
    if settings is None:
        return FrontendEventBus(channel)
    return FrontendEventBus(channel, settings.frontend, settings.frontend_bridge)
