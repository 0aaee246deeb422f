"""Event system for decoupled communication."""

from bridgebus.core.events.bus import EventBus, create_event_bus
from bridgebus.core.events.handlers import (
    BaseEventHandler,
    LoggingHandler,
    MetricsHandler,
    sanitize_payload,
)
from bridgebus.core.events.models import (
    Event,
    EventBusStats,
    EventMeta,
    EventSource,
    Subscription,
    SubscriptionOptions,
)
from bridgebus.core.events.types import (
    EVENT_PAYLOADS,
    EventType,
    create_event,
    event_key,
    generate_correlation_id,
    generate_subscription_id,
    validate_payload,
)

__all__ = [
    "EVENT_PAYLOADS",
    "Event",
    "EventBus",
    "EventBusStats",
    "BaseEventHandler",
    "EventMeta",
    "EventSource",
    "EventType",
    "LoggingHandler",
    "MetricsHandler",
    "Subscription",
    "SubscriptionOptions",
    "create_event",
    "create_event_bus",
    "event_key",
    "generate_correlation_id",
    "generate_subscription_id",
    "sanitize_payload",
    "validate_payload",
]
