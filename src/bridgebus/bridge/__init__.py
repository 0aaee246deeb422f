"""Process bridging for the event bus."""

from bridgebus.bridge.adapter import BridgedEventBus, BridgeStats
from bridgebus.bridge.backend import BackendEventBus, create_backend_bus
from bridgebus.bridge.channel import (
    BridgeChannel,
    ChannelListeners,
    EventChannel,
    InMemoryChannel,
    create_channel_pair,
)
from bridgebus.bridge.frontend import FrontendEventBus, create_frontend_bus

__all__ = [
    "BackendEventBus",
    "BridgeChannel",
    "BridgeStats",
    "BridgedEventBus",
    "ChannelListeners",
    "EventChannel",
    "FrontendEventBus",
    "InMemoryChannel",
    "create_backend_bus",
    "create_channel_pair",
    "create_frontend_bus",
]
