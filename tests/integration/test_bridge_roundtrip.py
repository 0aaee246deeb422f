"""Integration tests for two bridged buses joined by an in-memory channel."""

from __future__ import annotations

import asyncio

import pytest

from bridgebus.core.events.models import EventSource
from bridgebus.core.events.types import EventType
from tests.pytest_plugins.bus_helpers import Recorder, settle

pytestmark = pytest.mark.bridge


class TestRoundTrip:
    """Events crossing between the privileged and sandboxed sides."""

    @pytest.mark.asyncio
    async def test_frontend_event_reaches_backend(self, bridged_pair):
        """Test the sandboxed-to-privileged direction."""
        backend, frontend = bridged_pair
        remote = Recorder()
        local = Recorder()
        backend.on(EventType.USER_ACTION, remote)
        frontend.on(EventType.USER_ACTION, local)

        event = await frontend.emit(EventType.USER_ACTION, {"action": "click"})
        await settle(backend, frontend)

        assert local.count == 1
        assert local.last_meta.source == EventSource.FRONTEND
        assert remote.payloads == [{"action": "click"}]
        assert remote.last_meta.source == EventSource.CROSS_PROCESS
        assert remote.last_meta.correlation_id == event.meta.correlation_id

    @pytest.mark.asyncio
    async def test_backend_event_reaches_frontend(self, bridged_pair):
        """Test the privileged-to-sandboxed direction."""
        backend, frontend = bridged_pair
        remote = Recorder()
        frontend.on(EventType.CROSS_SYNC, remote)
        await settle(backend, frontend)

        await backend.emit(EventType.CROSS_SYNC, {"channel": "prefs", "data": [1, 2]})
        await settle(backend, frontend)

        assert remote.payloads == [{"channel": "prefs", "data": [1, 2]}]
        assert remote.last_meta.source == EventSource.CROSS_PROCESS

    @pytest.mark.asyncio
    async def test_no_echo_between_sides(self, bridged_pair):
        """Test that an event crosses exactly once in each direction it travels."""
        backend, frontend = bridged_pair
        backend_seen = Recorder()
        frontend_seen = Recorder()
        backend.on("ping", backend_seen)
        frontend.on("ping", frontend_seen)

        await frontend.emit("ping", 1)
        await settle(backend, frontend)

        assert backend_seen.count == 1
        assert frontend_seen.count == 1
        assert frontend.get_stats().received_events == 0
        assert backend.get_stats().forwarded_events == 0

    @pytest.mark.asyncio
    async def test_received_payload_is_a_copy(self, bridged_pair):
        """Test that sides never share payload objects."""
        backend, frontend = bridged_pair
        remote = Recorder()
        backend.on("data", remote)
        payload = {"items": [1]}

        await frontend.emit("data", payload)
        await settle(backend, frontend)
        payload["items"].append(2)

        assert remote.payloads == [{"items": [1]}]

    @pytest.mark.asyncio
    async def test_backend_rejects_malformed_registered_payload(self, bridged_pair):
        """Test privileged-side validation of inbound payloads."""
        backend, frontend = bridged_pair
        remote = Recorder()
        backend.on(EventType.WINDOW_FOCUS, remote)

        await frontend.emit(EventType.WINDOW_FOCUS, {"window_id": "not-an-int"})
        await settle(backend, frontend)

        assert remote.count == 0
        assert backend.get_stats().dropped_messages == 1

    @pytest.mark.asyncio
    async def test_backend_learns_frontend_interest(self, bridged_pair):
        """Test that frontend subscriptions are visible on the backend."""
        backend, frontend = bridged_pair

        sub = frontend.on("theme", Recorder())
        await settle(backend, frontend)
        assert backend.peer_interest(sub.event_type) == ["main"]

        sub.unsubscribe()
        await settle(backend, frontend)
        assert backend.peer_interest(sub.event_type) == []

    @pytest.mark.asyncio
    async def test_frontend_shutdown_clears_peer(self, bridged_pair):
        """Test that closing the sandboxed side drops its interest on the backend."""
        backend, frontend = bridged_pair
        frontend.on("a", Recorder())
        await settle(backend, frontend)
        assert backend.peers == ["main"]

        await frontend.shutdown()
        await settle(backend)

        assert backend.peers == []

    @pytest.mark.asyncio
    async def test_ordering_across_the_bridge(self, bridged_pair):
        """Test that events arrive in emission order."""
        backend, frontend = bridged_pair
        remote = Recorder()
        frontend.on("n", remote)
        await settle(backend, frontend)

        for i in range(20):
            await backend.emit("n", i)
        await settle(backend, frontend)

        assert remote.payloads == list(range(20))

    @pytest.mark.asyncio
    async def test_pending_handler_does_not_stall_the_bridge(self, bridged_pair):
        """Test that a handler awaiting a later event from the other side completes."""
        backend, frontend = bridged_pair
        gate = asyncio.Event()
        completed = Recorder()

        async def wait_for_second(payload, meta):
            await gate.wait()
            completed(payload, meta)

        frontend.on("x:a", wait_for_second)
        frontend.on("x:b", lambda payload, meta: gate.set())
        await settle(backend, frontend)

        await backend.emit("x:a", 1)
        await backend.emit("x:b", 2)
        await asyncio.wait_for(settle(backend, frontend), timeout=1)

        assert gate.is_set()
        assert completed.payloads == [1]
