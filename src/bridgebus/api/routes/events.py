"""Event bus diagnostics routes."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, Request

from bridgebus.api.schemas import (
    EventResponse,
    HealthResponse,
    HistoryResponse,
    StatsResponse,
    SubscriptionResponse,
    SubscriptionsResponse,
)
from bridgebus.bridge.backend import BackendEventBus

logger = structlog.get_logger(__name__)
router = APIRouter()


def get_event_bus(request: Request) -> BackendEventBus:
    """Resolve the host bus owned by the application."""
    return request.app.state.event_bus


EventBusDep = Annotated[BackendEventBus, Depends(get_event_bus)]


@router.get("/stats", response_model=StatsResponse)
async def get_stats(bus: EventBusDep) -> StatsResponse:
    """Get event bus and bridge statistics."""
    return StatsResponse(**bus.get_stats().to_dict())


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    bus: EventBusDep,
    event_type: str | None = None,
    limit: Annotated[int | None, Query(ge=1, le=1000)] = None,
) -> HistoryResponse:
    """Get recorded events, optionally filtered by type."""
    events = [
        EventResponse(**event.to_dict()) for event in bus.get_history(event_type, limit)
    ]
    return HistoryResponse(events=events, count=len(events))


@router.get("/subscriptions", response_model=SubscriptionsResponse)
async def get_subscriptions(
    bus: EventBusDep,
    event_type: str | None = None,
) -> SubscriptionsResponse:
    """List live subscriptions on the host bus."""
    subscriptions = [
        SubscriptionResponse(
            id=sub.id,
            event_type=sub.event_type,
            priority=sub.priority,
            once=sub.once,
        )
        for sub in bus.get_subscriptions(event_type)
    ]
    return SubscriptionsResponse(subscriptions=subscriptions, count=len(subscriptions))


@router.get("/health", response_model=HealthResponse)
async def health(request: Request, bus: EventBusDep) -> HealthResponse:
    """Report whether the host bus is bridged and which peers are connected."""
    channel = request.app.state.bridge_channel
    return HealthResponse(
        status="healthy" if not bus.is_destroyed else "stopped",
        bridged=bus.is_bridged,
        connected_peers=channel.peer_ids,
    )
