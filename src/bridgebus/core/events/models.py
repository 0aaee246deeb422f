"""Event envelope, subscription and statistics models."""

from __future__ import annotations

import copy
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bridgebus.core.events.bus import EventBus


class EventSource(str, Enum):
    """Where an event originated."""

    BACKEND = "backend"
    FRONTEND = "frontend"
    CROSS_PROCESS = "cross-process"


@dataclass(frozen=True)
class EventMeta:
    """Envelope metadata stamped at emission time."""

    timestamp: int
    source: EventSource
    correlation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "timestamp": self.timestamp,
            "source": self.source.value,
            "correlation_id": self.correlation_id,
        }


@dataclass(frozen=True)
class Event:
    """A single emitted event: type, payload and metadata."""

    type: str
    payload: Any
    meta: EventMeta

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.type,
            "payload": self.payload,
            "meta": self.meta.to_dict(),
        }

    def snapshot(self) -> Event:
        """Return a copy whose payload container is detached from the caller's."""
        if isinstance(self.payload, (dict, list)):
            return Event(type=self.type, payload=copy.copy(self.payload), meta=self.meta)
        return self


# Handlers receive (payload, meta) and may return an awaitable
EventHandler = Callable[[Any, EventMeta], Awaitable[None] | None]


@dataclass(frozen=True)
class SubscriptionOptions:
    """Per-subscription delivery options."""

    once: bool = False
    priority: int = 0


@dataclass(eq=False)
class Subscription:
    """A registered handler for one event type.

    Subscriptions compare by identity; subscribing the same handler twice
    yields two independent subscriptions.
    """

    id: str
    event_type: str
    handler: EventHandler
    options: SubscriptionOptions = field(default_factory=SubscriptionOptions)
    bus: EventBus | None = field(default=None, repr=False)

    @property
    def priority(self) -> int:
        return self.options.priority

    @property
    def once(self) -> bool:
        return self.options.once

    def unsubscribe(self) -> None:
        """Remove this subscription from its bus. Safe to call repeatedly."""
        if self.bus is not None:
            self.bus.off(self.event_type, self)


@dataclass
class EventBusStats:
    """Running counters for a bus."""

    total_events: int = 0
    events_by_type: dict[str, int] = field(default_factory=dict)
    active_subscriptions: int = 0
    failed_handlers: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_events": self.total_events,
            "events_by_type": dict(self.events_by_type),
            "active_subscriptions": self.active_subscriptions,
            "failed_handlers": self.failed_handlers,
        }
