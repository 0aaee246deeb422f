"""Global test fixtures for bridgebus."""

from __future__ import annotations

import pytest

from tests.pytest_plugins.bus_helpers import Recorder
from tests.pytest_plugins.markers import (
    pytest_addoption,
    pytest_collection_modifyitems,
    pytest_configure,
)

# Re-export for pytest discovery
__all__ = [
    "pytest_addoption",
    "pytest_collection_modifyitems",
    "pytest_configure",
]


# ============================================================================
# PYTEST FIXTURES - EVENT BUS
# ============================================================================


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def event_bus():
    """Create an event bus for testing."""
    from bridgebus.core.events.bus import EventBus

    bus = EventBus()
    yield bus
    bus.destroy()


@pytest.fixture
async def bridged_pair():
    """Create an initialized backend/frontend pair joined by an in-memory channel."""
    from bridgebus.bridge.backend import BackendEventBus
    from bridgebus.bridge.channel import create_channel_pair
    from bridgebus.bridge.frontend import FrontendEventBus

    backend_end, frontend_end = create_channel_pair()
    backend = BackendEventBus(backend_end)
    frontend = FrontendEventBus(frontend_end)
    await backend.initialize()
    await frontend.initialize()
    yield backend, frontend
    await frontend.shutdown()
    await backend.shutdown()


# ============================================================================
# PYTEST FIXTURES - API
# ============================================================================


@pytest.fixture
def test_client():
    """Create a test client for the API host."""
    from fastapi.testclient import TestClient

    from bridgebus.api.app import create_app
    from bridgebus.core.models.config import Settings

    app = create_app(Settings())
    with TestClient(app) as client:
        yield client
