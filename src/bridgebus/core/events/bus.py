"""Priority-ordered event bus with history and statistics."""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from typing import Any

import structlog

from bridgebus.core.events.handlers import sanitize_payload
from bridgebus.core.events.models import (
    Event,
    EventBusStats,
    EventHandler,
    EventSource,
    Subscription,
    SubscriptionOptions,
)
from bridgebus.core.events.types import (
    EventType,
    create_event,
    event_key,
    generate_subscription_id,
)
from bridgebus.core.models.config import BusConfig

logger = structlog.get_logger(__name__)


class EventBus:
    """In-process pub/sub bus.

    Handlers for an event run in descending priority order, ties broken by
    registration order. A failing handler is logged and counted but never
    prevents the remaining handlers from running, and never fails ``emit``.
    """

    def __init__(
        self,
        config: BusConfig | None = None,
        *,
        default_source: EventSource = EventSource.BACKEND,
    ) -> None:
        """
        Initialize the event bus.

        Args:
            config: Engine configuration (defaults apply when omitted)
            default_source: Source stamped on events emitted without one
        """
        self._config = config or BusConfig()
        self._default_source = default_source
        # type -> subscription id -> subscription; dict order is registration order
        self._handlers: dict[str, dict[str, Subscription]] = {}
        self._history: deque[Event] = deque(maxlen=self._config.max_history_size)
        self._stats = EventBusStats()
        self._correlation_id: str | None = None
        self._destroyed = False

    @property
    def config(self) -> BusConfig:
        """Engine configuration."""
        return self._config

    @property
    def default_source(self) -> EventSource:
        """Source used when ``emit`` is called without one."""
        return self._default_source

    @property
    def correlation_id(self) -> str | None:
        """Ambient correlation id applied to subsequent emissions."""
        return self._correlation_id

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on(
        self,
        event_type: EventType | str,
        handler: EventHandler,
        *,
        once: bool = False,
        priority: int = 0,
    ) -> Subscription:
        """
        Subscribe to an event type.

        Args:
            event_type: Event type to subscribe to
            handler: Callable receiving ``(payload, meta)``; may be async
            once: Remove the subscription after its first invocation
            priority: Higher values run first

        Returns:
            The new subscription
        """
        key = event_key(event_type)
        subscription = Subscription(
            id=generate_subscription_id(),
            event_type=key,
            handler=handler,
            options=SubscriptionOptions(once=once, priority=priority),
            bus=self,
        )
        self._handlers.setdefault(key, {})[subscription.id] = subscription

        if self._config.debug:
            logger.debug(
                "Subscribed to event",
                event_type=key,
                subscription_id=subscription.id,
                priority=priority,
                once=once,
            )

        return subscription

    def once(
        self,
        event_type: EventType | str,
        handler: EventHandler,
        *,
        priority: int = 0,
    ) -> Subscription:
        """Subscribe for a single delivery."""
        return self.on(event_type, handler, once=True, priority=priority)

    def off(self, event_type: EventType | str, subscription: Subscription) -> None:
        """Remove a subscription. Unknown or already-removed ones are ignored."""
        key = event_key(event_type)
        subscriptions = self._handlers.get(key)
        if not subscriptions or subscriptions.get(subscription.id) is not subscription:
            return

        del subscriptions[subscription.id]
        if not subscriptions:
            del self._handlers[key]

        if self._config.debug:
            logger.debug(
                "Unsubscribed from event",
                event_type=key,
                subscription_id=subscription.id,
            )

    def off_all(self, event_type: EventType | str | None = None) -> None:
        """Remove every subscription, or only those for ``event_type``."""
        if event_type is None:
            self._handlers.clear()
            return

        key = event_key(event_type)
        self._handlers.pop(key, None)
        if self._config.debug:
            logger.debug("Removed all subscriptions", event_type=key)

    def get_subscriptions(self, event_type: EventType | str | None = None) -> list[Subscription]:
        """List live subscriptions, optionally for a single type."""
        if event_type is not None:
            return list(self._handlers.get(event_key(event_type), {}).values())
        return [sub for subs in self._handlers.values() for sub in subs.values()]

    def has_subscription(self, subscription: Subscription) -> bool:
        """Check whether ``subscription`` is still registered."""
        subscriptions = self._handlers.get(subscription.event_type, {})
        return subscriptions.get(subscription.id) is subscription

    def subscribed_types(self) -> list[str]:
        """Event types with at least one live subscription."""
        return list(self._handlers)

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    async def emit(
        self,
        event_type: EventType | str,
        payload: Any = None,
        source: EventSource | None = None,
        *,
        correlation_id: str | None = None,
    ) -> Event:
        """
        Emit an event to all local subscribers.

        Every handler is invoked before any asynchronous completion is
        awaited. Returns once all handlers have settled.

        Args:
            event_type: Event type
            payload: Event payload
            source: Originating side (defaults to the bus default)
            correlation_id: Tracing id; falls back to the ambient id, then a fresh one

        Returns:
            The emitted event
        """
        key = event_key(event_type)
        event = create_event(
            key,
            payload,
            source=source or self._default_source,
            correlation_id=correlation_id or self._correlation_id,
        )
        self._record(event)

        if self._config.debug:
            logger.debug(
                "Emitting event",
                event_type=key,
                source=event.meta.source.value,
                correlation_id=event.meta.correlation_id,
                payload=sanitize_payload(payload),
            )

        subscriptions = self._ordered_subscriptions(key)
        if not subscriptions:
            if self._config.debug:
                logger.debug("No handlers for event", event_type=key)
            return event

        pending: list[tuple[Subscription, asyncio.Future[Any]]] = []
        for subscription in subscriptions:
            try:
                result = subscription.handler(event.payload, event.meta)
                if inspect.isawaitable(result):
                    pending.append((subscription, asyncio.ensure_future(result)))
            except Exception as e:
                self._handler_failed(key, subscription, e)
            finally:
                if subscription.once:
                    self.off(key, subscription)

        if pending:
            results = await asyncio.gather(
                *(future for _, future in pending),
                return_exceptions=True,
            )
            for (subscription, _), result in zip(pending, results, strict=True):
                if isinstance(result, BaseException):
                    self._handler_failed(key, subscription, result)

        return event

    async def emit_and_wait(self, event_type: EventType | str, payload: Any = None) -> Event:
        """Emit and wait for every handler to settle (same contract as ``emit``)."""
        return await self.emit(event_type, payload)

    def _ordered_subscriptions(self, key: str) -> list[Subscription]:
        subscriptions = self._handlers.get(key)
        if not subscriptions:
            return []
        # sorted() is stable, so equal priorities keep registration order
        return sorted(subscriptions.values(), key=lambda sub: -sub.priority)

    def _record(self, event: Event) -> None:
        self._stats.total_events += 1
        by_type = self._stats.events_by_type
        by_type[event.type] = by_type.get(event.type, 0) + 1

        if self._config.enable_history:
            self._history.append(event.snapshot())

    def _handler_failed(
        self,
        event_type: str,
        subscription: Subscription,
        error: BaseException,
    ) -> None:
        self._stats.failed_handlers += 1
        logger.error(
            "Handler error",
            event_type=event_type,
            subscription_id=subscription.id,
            error=str(error),
            exc_info=error,
        )

    # ------------------------------------------------------------------
    # History and statistics
    # ------------------------------------------------------------------

    def get_history(
        self,
        event_type: EventType | str | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """
        Return recorded events, oldest first.

        Args:
            event_type: Only events of this type
            limit: Keep only the most recent ``limit`` matches (falsy means all)
        """
        if event_type is None:
            events = list(self._history)
        else:
            key = event_key(event_type)
            events = [event for event in self._history if event.type == key]

        if limit:
            return events[-limit:]
        return events

    def clear_history(self, event_type: EventType | str | None = None) -> None:
        """Drop all history, or only entries of ``event_type``."""
        if event_type is None:
            self._history.clear()
            return

        key = event_key(event_type)
        kept = [event for event in self._history if event.type != key]
        self._history.clear()
        self._history.extend(kept)

    def get_stats(self) -> EventBusStats:
        """Return a snapshot of the bus counters."""
        return EventBusStats(
            total_events=self._stats.total_events,
            events_by_type=dict(self._stats.events_by_type),
            active_subscriptions=sum(len(subs) for subs in self._handlers.values()),
            failed_handlers=self._stats.failed_handlers,
        )

    def reset_stats(self) -> None:
        """Zero the event and failure counters."""
        self._stats = EventBusStats()

    # ------------------------------------------------------------------
    # Correlation
    # ------------------------------------------------------------------

    def set_correlation_id(self, correlation_id: str) -> None:
        """Set the ambient correlation id for subsequent emissions."""
        self._correlation_id = correlation_id

    def clear_correlation_id(self) -> None:
        """Clear the ambient correlation id."""
        self._correlation_id = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_destroyed(self) -> bool:
        """Whether ``destroy`` has been called."""
        return self._destroyed

    def destroy(self) -> None:
        """Remove all subscriptions and clear history and statistics."""
        self.off_all()
        self.clear_history()
        self.reset_stats()
        self._correlation_id = None

        if not self._destroyed:
            self._destroyed = True
            logger.info("Event bus destroyed")


def create_event_bus(
    config: BusConfig | None = None,
    *,
    default_source: EventSource = EventSource.BACKEND,
    **overrides: Any,
) -> EventBus:
    """
    Create an owned event bus.

    Args:
        config: Base configuration
        default_source: Source stamped on events emitted without one
        **overrides: ``BusConfig`` fields overriding ``config``

    Returns:
        A new bus
    """
    base = config or BusConfig()
    if overrides:
        base = BusConfig(**{**base.model_dump(), **overrides})
    return EventBus(base, default_source=default_source)


__all__ = ["EventBus", "create_event_bus"]
