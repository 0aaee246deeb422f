"""Typed cross-process event bus."""

__version__ = "0.1.0"

from bridgebus.core.events import (
    Event,
    EventBus,
    EventMeta,
    EventSource,
    EventType,
    Subscription,
    create_event_bus,
)

__all__ = [
    "Event",
    "EventBus",
    "EventMeta",
    "EventSource",
    "EventType",
    "Subscription",
    "__version__",
    "create_event_bus",
]
