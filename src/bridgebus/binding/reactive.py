"""Component-lifetime bindings and observable views over an event bus."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog

from bridgebus.core.events.models import Event, EventBusStats, EventHandler, EventMeta
from bridgebus.core.events.types import EventType, event_key

if TYPE_CHECKING:
    from types import TracebackType

    from bridgebus.core.events.bus import EventBus
    from bridgebus.core.events.models import Subscription

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class Ref(Generic[T]):
    """Observable value. Watchers run on every assignment."""

    def __init__(self, value: T) -> None:
        self._value = value
        self._watchers: list[Callable[[T, T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, new: T) -> None:
        old = self._value
        self._value = new
        for watcher in list(self._watchers):
            try:
                watcher(new, old)
            except Exception as e:
                logger.exception("Watcher error", error=str(e))

    def watch(self, callback: Callable[[T, T], None]) -> Callable[[], None]:
        """
        Observe assignments.

        Args:
            callback: Called with ``(new, old)``

        Returns:
            Function that stops watching
        """
        self._watchers.append(callback)

        def unwatch() -> None:
            if callback in self._watchers:
                self._watchers.remove(callback)

        return unwatch

    def __repr__(self) -> str:
        return f"Ref({self._value!r})"


class Binding:
    """Ties bus subscriptions to a component's mount/unmount lifetime.

    Every subscription created through a binding is released on
    ``unmount``; subscriptions made directly on the bus are left alone.
    """

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._subscriptions: list[Subscription] = []
        self._mounted = False

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    def mount(self) -> None:
        """Attach to the bus. Mounting twice is a no-op."""
        if self._mounted:
            return
        self._mounted = True
        self._on_mount()

    def unmount(self) -> None:
        """Release every subscription created through this binding.

        Subscriptions made while not mounted are released too.
        """
        self._release_all()
        if not self._mounted:
            return
        self._mounted = False
        self._on_unmount()

    def _on_mount(self) -> None:
        pass

    def _on_unmount(self) -> None:
        pass

    def _subscribe(
        self,
        event_type: EventType | str,
        handler: EventHandler,
        *,
        once: bool = False,
        priority: int = 0,
    ) -> Subscription:
        subscription = self._bus.on(event_type, handler, once=once, priority=priority)
        self._subscriptions.append(subscription)
        return subscription

    def _release_all(self) -> None:
        for subscription in self._subscriptions:
            self._bus.off(subscription.event_type, subscription)
        self._subscriptions.clear()

    def __enter__(self) -> Binding:
        self.mount()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.unmount()


class EventBinding(Binding):
    """Subscribe, unsubscribe and emit on behalf of one component."""

    def on(
        self,
        event_type: EventType | str,
        handler: EventHandler,
        *,
        once: bool = False,
        priority: int = 0,
    ) -> Subscription:
        """Subscribe; released automatically on unmount."""
        return self._subscribe(event_type, handler, once=once, priority=priority)

    def once(
        self,
        event_type: EventType | str,
        handler: EventHandler,
        *,
        priority: int = 0,
    ) -> Subscription:
        return self._subscribe(event_type, handler, once=True, priority=priority)

    def off(self, event_type: EventType | str, subscription: Subscription) -> None:
        self._bus.off(event_type, subscription)
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def emit(self, event_type: EventType | str, payload: Any = None) -> Event:
        return await self._bus.emit(event_type, payload)

    def unsubscribe_all(self) -> None:
        """Release this binding's subscriptions without unmounting."""
        self._release_all()

    @property
    def active_subscriptions(self) -> list[Subscription]:
        """Subscriptions made through this binding that are still registered."""
        self._subscriptions = [sub for sub in self._subscriptions if self._bus.has_subscription(sub)]
        return list(self._subscriptions)


class EventState(Binding):
    """Latest payload, delivery count and last update time for one event type."""

    def __init__(self, bus: EventBus, event_type: EventType | str, initial: Any = None) -> None:
        super().__init__(bus)
        self.event_type = event_key(event_type)
        self.data: Ref[Any] = Ref(initial)
        self.count: Ref[int] = Ref(0)
        self.last_updated: Ref[int | None] = Ref(None)

    def _on_mount(self) -> None:
        self._subscribe(self.event_type, self._update)

    def _update(self, payload: Any, meta: EventMeta) -> None:
        self.data.value = payload
        self.count.value += 1
        self.last_updated.value = meta.timestamp


class EventHistoryView(Binding):
    """Rolling window of the most recent events of one type."""

    def __init__(self, bus: EventBus, event_type: EventType | str, limit: int = 10) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        super().__init__(bus)
        self.event_type = event_key(event_type)
        self.limit = limit
        self.events: Ref[list[Event]] = Ref([])

    def _on_mount(self) -> None:
        self.events.value = self._bus.get_history(self.event_type, self.limit)
        self._subscribe(self.event_type, self._append)

    def _append(self, payload: Any, meta: EventMeta) -> None:
        event = Event(type=self.event_type, payload=payload, meta=meta)
        self.events.value = [*self.events.value, event][-self.limit :]

    def clear(self) -> None:
        """Empty the view and the bus history for this type."""
        self._bus.clear_history(self.event_type)
        self.events.value = []


class EventStatsView(Binding):
    """Snapshot of bus statistics, refreshed on demand."""

    def __init__(self, bus: EventBus) -> None:
        super().__init__(bus)
        self.stats: Ref[EventBusStats] = Ref(bus.get_stats())

    def _on_mount(self) -> None:
        self.refresh()

    def refresh(self) -> None:
        self.stats.value = self._bus.get_stats()

    def reset(self) -> None:
        """Reset the bus counters and refresh the snapshot."""
        self._bus.reset_stats()
        self.refresh()
