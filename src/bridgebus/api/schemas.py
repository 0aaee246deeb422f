"""Pydantic schemas for API responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from bridgebus.core.events.models import EventSource


class EventMetaResponse(BaseModel):
    """Envelope metadata."""

    timestamp: int
    source: EventSource
    correlation_id: str | None = None


class EventResponse(BaseModel):
    """One recorded event."""

    type: str
    payload: Any = None
    meta: EventMetaResponse


class HistoryResponse(BaseModel):
    """Recorded events, oldest first."""

    events: list[EventResponse] = Field(default_factory=list)
    count: int = 0


class StatsResponse(BaseModel):
    """Bus and bridge counters."""

    total_events: int
    events_by_type: dict[str, int]
    active_subscriptions: int
    failed_handlers: int
    forwarded_events: int = 0
    received_events: int = 0
    dropped_messages: int = 0
    subscribed_peers: int = 0
    peer_subscriptions: dict[str, list[str]] = Field(default_factory=dict)


class SubscriptionResponse(BaseModel):
    """A live subscription, without its handler."""

    id: str
    event_type: str
    priority: int
    once: bool


class SubscriptionsResponse(BaseModel):
    """Live subscriptions on the host bus."""

    subscriptions: list[SubscriptionResponse] = Field(default_factory=list)
    count: int = 0


class HealthResponse(BaseModel):
    """Bridge health summary."""

    status: str
    bridged: bool
    connected_peers: list[str] = Field(default_factory=list)
