"""WebSocket host channel for sandboxed peers."""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from bridgebus.bridge.channel import ChannelCallback, ChannelListeners, EventChannel
from bridgebus.core.errors import ChannelClosedError

logger = structlog.get_logger(__name__)


class WebSocketChannel:
    """Bridge channel serving any number of WebSocket peers.

    Handles:
    - Peer lifecycle (connect/disconnect, keyed by peer id)
    - Broadcasting bridge frames to every connected peer
    - Dispatching inbound frames to channel listeners
    """

    def __init__(self) -> None:
        """Initialize the host channel."""
        self._connections: dict[str, WebSocket] = {}
        self._connection_lock = asyncio.Lock()
        self._listeners = ChannelListeners()
        self._opened = False

    @property
    def is_available(self) -> bool:
        return True

    @property
    def connection_count(self) -> int:
        """Get current number of connected peers."""
        return len(self._connections)

    @property
    def peer_ids(self) -> list[str]:
        return list(self._connections)

    async def open(self) -> None:
        self._opened = True

    async def close(self) -> None:
        """Close every peer connection."""
        self._opened = False
        async with self._connection_lock:
            for websocket in list(self._connections.values()):
                with contextlib.suppress(Exception):
                    await websocket.close()
            self._connections.clear()
        self._listeners.clear()

    def on_receive(self, channel: str, callback: ChannelCallback) -> Callable[[], None]:
        return self._listeners.add(channel, callback)

    async def send(self, channel: str, message: dict[str, Any]) -> None:
        """Broadcast a bridge frame to all connected peers.

        Peers whose socket fails are dropped and reported as disconnected.
        """
        if not self._opened:
            raise ChannelClosedError("Host channel is not open")
        if not self._connections:
            return

        data = json.dumps({"channel": channel, "message": message}, default=str)

        async with self._connection_lock:
            failed: list[str] = []
            for peer_id, websocket in self._connections.items():
                try:
                    await websocket.send_text(data)
                except Exception as e:
                    logger.debug("Failed to send to peer", peer_id=peer_id, error=str(e))
                    failed.append(peer_id)

            for peer_id in failed:
                del self._connections[peer_id]

        for peer_id in failed:
            self._listeners.dispatch(EventChannel.DISCONNECT.value, {"peer_id": peer_id})

    async def connect(self, websocket: WebSocket, peer_id: str) -> None:
        """Accept a peer connection, replacing any previous one with the same id."""
        await websocket.accept()

        async with self._connection_lock:
            previous = self._connections.get(peer_id)
            self._connections[peer_id] = websocket

        if previous is not None:
            with contextlib.suppress(Exception):
                await previous.close()

        logger.info(
            "Bridge peer connected",
            peer_id=peer_id,
            total_connections=self.connection_count,
        )

        await self._send_to_peer(
            websocket,
            {
                "type": "connected",
                "peer_id": peer_id,
                "timestamp": datetime.now(UTC).isoformat(),
            },
        )

    async def disconnect(self, websocket: WebSocket, peer_id: str) -> None:
        """Forget a peer and tell listeners it went away."""
        async with self._connection_lock:
            if self._connections.get(peer_id) is not websocket:
                return
            del self._connections[peer_id]

        logger.info(
            "Bridge peer disconnected",
            peer_id=peer_id,
            total_connections=self.connection_count,
        )
        self._listeners.dispatch(EventChannel.DISCONNECT.value, {"peer_id": peer_id})

    async def handle_frame(self, websocket: WebSocket, frame: dict[str, Any]) -> None:
        """Route one parsed frame from a peer."""
        if frame.get("type") == "ping":
            await self._send_to_peer(websocket, {"type": "pong"})
            return

        channel = frame.get("channel")
        message = frame.get("message")
        if isinstance(channel, str) and isinstance(message, dict):
            self._listeners.dispatch(channel, message)
            return

        await self._send_to_peer(websocket, {"type": "error", "message": "Unknown frame"})

    async def _send_to_peer(self, websocket: WebSocket, message: dict[str, Any]) -> bool:
        """Send a control frame to one peer.

        Returns:
            True if sent successfully, False otherwise.
        """
        try:
            await websocket.send_text(json.dumps(message, default=str))
            return True
        except Exception as e:
            logger.debug("Failed to send to peer", error=str(e))
            return False


async def websocket_endpoint(websocket: WebSocket, peer_id: str) -> None:
    """WebSocket endpoint for one sandboxed peer.

    Handles the full lifecycle of a peer connection:
    1. Accept connection
    2. Route incoming frames onto the bridge
    3. Handle disconnection
    """
    channel: WebSocketChannel = websocket.app.state.bridge_channel
    await channel.connect(websocket, peer_id)

    try:
        while True:
            message = await websocket.receive()

            if message["type"] == "websocket.disconnect":
                break

            if message["type"] != "websocket.receive":
                continue

            if message.get("text") is not None:
                try:
                    parsed = json.loads(message["text"])
                except json.JSONDecodeError:
                    await channel._send_to_peer(
                        websocket,
                        {"type": "error", "message": "Invalid JSON"},
                    )
                    continue

                if isinstance(parsed, dict):
                    await channel.handle_frame(websocket, parsed)
                else:
                    await channel._send_to_peer(
                        websocket,
                        {"type": "error", "message": "Frame must be a JSON object"},
                    )
            elif message.get("bytes") is not None:
                await channel._send_to_peer(
                    websocket,
                    {"type": "error", "message": "Binary messages not supported"},
                )

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error", peer_id=peer_id, error=str(e))
    finally:
        await channel.disconnect(websocket, peer_id)
