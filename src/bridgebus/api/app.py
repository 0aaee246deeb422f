"""FastAPI host for the privileged-side event bus."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bridgebus import __version__
from bridgebus.api.routes import events
from bridgebus.api.websocket import WebSocketChannel, websocket_endpoint
from bridgebus.bridge.backend import BackendEventBus, create_backend_bus
from bridgebus.core.models.config import Settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Bridge the host bus for the lifetime of the application."""
    bus: BackendEventBus = app.state.event_bus

    logger.info("Starting bridgebus host")
    await bus.initialize()
    await bus.notify_initialized(__version__)
    await bus.notify_ready()

    yield

    logger.info("Shutting down bridgebus host")
    if not bus.is_destroyed:
        await bus.notify_before_quit()
        await bus.notify_quit()


def create_app(
    settings: Settings | None = None,
    bus: BackendEventBus | None = None,
) -> FastAPI:
    """Create FastAPI application.

    Args:
        settings: Application settings (loaded from the environment if omitted)
        bus: Pre-built host bus; must be bound to a ``WebSocketChannel``.
             A new one is created from ``settings`` when omitted.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or Settings()

    if bus is None:
        bus = create_backend_bus(WebSocketChannel(), settings)
    if not isinstance(bus.channel, WebSocketChannel):
        raise TypeError("Host bus must be bound to a WebSocketChannel")

    app = FastAPI(
        title="bridgebus",
        description="Cross-process event bus host",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.event_bus = bus
    app.state.bridge_channel = bus.channel

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(events.router, prefix="/api/events", tags=["events"])
    app.add_api_websocket_route("/ws/events/{peer_id}", websocket_endpoint)

    logger.info("FastAPI app created", version=__version__)
    return app
