"""Component-lifetime bindings for the event bus."""

from bridgebus.binding.reactive import (
    Binding,
    EventBinding,
    EventHistoryView,
    EventState,
    EventStatsView,
    Ref,
)

__all__ = [
    "Binding",
    "EventBinding",
    "EventHistoryView",
    "EventState",
    "EventStatsView",
    "Ref",
]
