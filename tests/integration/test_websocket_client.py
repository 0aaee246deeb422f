"""End-to-end tests: aiohttp client channel against a live uvicorn host."""

from __future__ import annotations

import asyncio

import pytest
import uvicorn

from bridgebus.api.app import create_app
from bridgebus.bridge.frontend import FrontendEventBus
from bridgebus.bridge.websocket_client import WebSocketClientChannel
from bridgebus.core.errors import ChannelClosedError, ChannelUnavailableError
from bridgebus.core.events.models import EventSource
from bridgebus.core.events.types import EventType
from bridgebus.core.models.config import Settings
from tests.pytest_plugins.bus_helpers import Recorder, wait_until

pytestmark = [pytest.mark.network, pytest.mark.websocket]


@pytest.fixture
async def live_host():
    """Run the host app on an ephemeral port."""
    app = create_app(Settings())
    config = uvicorn.Config(app, host="127.0.0.1", port=0, log_level="warning")
    server = uvicorn.Server(config)
    task = asyncio.create_task(server.serve())
    await wait_until(lambda: server.started, timeout=5.0)
    port = server.servers[0].sockets[0].getsockname()[1]

    yield app, f"ws://127.0.0.1:{port}"

    server.should_exit = True
    await task


class TestWebSocketClientChannel:
    """Tests for the sandboxed-side WebSocket channel."""

    @pytest.mark.asyncio
    async def test_unreachable_host(self):
        """Test that a refused connection is reported as unavailable."""
        channel = WebSocketClientChannel("ws://127.0.0.1:1/ws/events/main")

        with pytest.raises(ChannelUnavailableError):
            await channel.open()
        await channel.close()

    @pytest.mark.asyncio
    async def test_send_before_open(self):
        """Test that sending without a connection raises."""
        channel = WebSocketClientChannel("ws://127.0.0.1:1/ws/events/main")
        with pytest.raises(ChannelClosedError):
            await channel.send("event:emit", {})

    @pytest.mark.asyncio
    async def test_frontend_degrades_when_host_is_down(self):
        """Test graceful degradation of a bus over an unreachable host."""
        bus = FrontendEventBus(WebSocketClientChannel("ws://127.0.0.1:1/ws/events/main"))
        handler = Recorder()
        bus.on("a", handler)

        await bus.initialize()
        await bus.emit("a")

        assert bus.is_bridged is False
        assert handler.count == 1
        await bus.shutdown()


class TestLiveBridge:
    """Round trips through a running host."""

    @pytest.mark.asyncio
    async def test_round_trip(self, live_host):
        """Test events flowing both ways between host and client bus."""
        app, url = live_host
        host_bus = app.state.event_bus
        from_host = Recorder()
        from_peer = Recorder()
        host_bus.on(EventType.USER_ACTION, from_peer)

        bus = FrontendEventBus(WebSocketClientChannel(f"{url}/ws/events/main"))
        bus.on(EventType.CROSS_SYNC, from_host)
        await bus.initialize()
        assert bus.is_bridged

        await wait_until(lambda: host_bus.peer_interest(EventType.CROSS_SYNC) == ["main"])

        await host_bus.emit(EventType.CROSS_SYNC, {"channel": "c", "data": {"n": 1}})
        await wait_until(lambda: from_host.count == 1)
        assert from_host.last_meta.source == EventSource.CROSS_PROCESS

        event = await bus.emit(EventType.USER_ACTION, {"action": "save"})
        await wait_until(lambda: from_peer.count == 1)
        assert from_peer.last_meta.correlation_id == event.meta.correlation_id

        await bus.shutdown()
        await wait_until(lambda: host_bus.peers == [])

    @pytest.mark.asyncio
    async def test_host_shutdown_notifies_client(self, live_host):
        """Test that the client sees app:quit when the host stops."""
        app, url = live_host
        quit_seen = Recorder()

        bus = FrontendEventBus(WebSocketClientChannel(f"{url}/ws/events/main"))
        bus.on(EventType.APP_QUIT, quit_seen)
        await bus.initialize()
        await wait_until(lambda: app.state.event_bus.peers == ["main"])

        await app.state.event_bus.notify_quit()
        await wait_until(lambda: quit_seen.count == 1)

        await bus.shutdown()
