"""Reusable class-based event handlers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import structlog

from bridgebus.core.events.types import EventType, event_key

if TYPE_CHECKING:
    from bridgebus.core.events.bus import EventBus
    from bridgebus.core.events.models import EventMeta, Subscription

_SENSITIVE_MARKERS = ("password", "secret", "token")


def sanitize_payload(payload: Any) -> Any:
    """Redact values whose keys look like credentials.

    Only top-level mapping keys are inspected; non-mapping payloads are
    returned unchanged.
    """
    if not isinstance(payload, dict):
        return payload

    sanitized: dict[Any, Any] = {}
    for key, value in payload.items():
        lowered = str(key).lower()
        if any(marker in lowered for marker in _SENSITIVE_MARKERS):
            sanitized[key] = "[REDACTED]"
        else:
            sanitized[key] = value
    return sanitized


class BaseEventHandler(ABC):
    """Base class for handlers that listen to several event types at once."""

    priority: int = 0

    @property
    @abstractmethod
    def handled_events(self) -> list[EventType | str]:
        """List of event types this handler processes."""
        ...

    @abstractmethod
    async def handle(self, event_type: str, payload: Any, meta: EventMeta) -> None:
        """
        Handle an event.

        Args:
            event_type: Wire name of the event
            payload: Event payload
            meta: Envelope metadata
        """
        ...

    def attach(self, bus: EventBus) -> list[Subscription]:
        """Subscribe this handler to every type it handles on ``bus``."""
        subscriptions = []
        for event_type in self.handled_events:
            key = event_key(event_type)

            async def dispatch(payload: Any, meta: EventMeta, _key: str = key) -> None:
                await self.handle(_key, payload, meta)

            subscriptions.append(bus.on(key, dispatch, priority=self.priority))
        return subscriptions


class LoggingHandler(BaseEventHandler):
    """Handler that logs events with credentials redacted."""

    def __init__(self, event_types: list[EventType | str]) -> None:
        """
        Initialize logging handler.

        Args:
            event_types: Event types to log
        """
        self._event_types = list(event_types)
        self._logger = structlog.get_logger(__name__)

    @property
    def handled_events(self) -> list[EventType | str]:
        """Return handled event types."""
        return self._event_types

    async def handle(self, event_type: str, payload: Any, meta: EventMeta) -> None:
        """Log the event."""
        self._logger.info(
            "Event received",
            event_type=event_type,
            source=meta.source.value,
            correlation_id=meta.correlation_id,
            payload=sanitize_payload(payload),
        )


class MetricsHandler(BaseEventHandler):
    """Handler that counts events per type and per source."""

    def __init__(self, event_types: list[EventType | str]) -> None:
        """Initialize metrics handler."""
        self._event_types = list(event_types)
        self._counters: dict[str, int] = {}
        self._by_source: dict[str, int] = {}

    @property
    def handled_events(self) -> list[EventType | str]:
        """Return handled event types."""
        return self._event_types

    async def handle(self, event_type: str, payload: Any, meta: EventMeta) -> None:
        """Increment counters for the event."""
        self._counters[event_type] = self._counters.get(event_type, 0) + 1
        source = meta.source.value
        self._by_source[source] = self._by_source.get(source, 0) + 1

    def get_metrics(self) -> dict[str, int]:
        """Get collected per-type counts."""
        return self._counters.copy()

    def get_source_metrics(self) -> dict[str, int]:
        """Get collected per-source counts."""
        return self._by_source.copy()

    def reset(self) -> None:
        """Reset all counters."""
        self._counters.clear()
        self._by_source.clear()
