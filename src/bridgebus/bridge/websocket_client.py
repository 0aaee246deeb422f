"""WebSocket client channel for a sandboxed process."""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Callable
from typing import Any

import aiohttp
import structlog

from bridgebus.bridge.channel import ChannelCallback, ChannelListeners, EventChannel
from bridgebus.core.errors import ChannelClosedError, ChannelUnavailableError

logger = structlog.get_logger(__name__)


class WebSocketClientChannel:
    """Bridge channel that talks to a host's ``/ws/events/{peer_id}`` endpoint.

    Frames are JSON objects of the form ``{"channel": ..., "message": ...}``.
    Host control frames (``connected``, ``pong``, ``error``) are logged and
    otherwise ignored.
    """

    def __init__(
        self,
        url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        heartbeat: float | None = 30.0,
    ) -> None:
        """
        Initialize the client channel.

        Args:
            url: WebSocket URL including the peer id path segment
            session: Optional shared session (not closed by this channel)
            heartbeat: aiohttp ping interval in seconds
        """
        self.url = url
        self._session = session
        self._owns_session = session is None
        self._heartbeat = heartbeat
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._listeners = ChannelListeners()
        self._closed = False

    @property
    def is_available(self) -> bool:
        return not self._closed

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def open(self) -> None:
        if self._closed:
            raise ChannelUnavailableError("Channel already closed")
        if self.is_open:
            return

        if self._session is None:
            self._session = aiohttp.ClientSession()

        try:
            self._ws = await self._session.ws_connect(self.url, heartbeat=self._heartbeat)
        except (aiohttp.ClientError, OSError) as e:
            if self._owns_session:
                await self._session.close()
                self._session = None
            raise ChannelUnavailableError(f"Cannot connect to {self.url}: {e}") from e

        self._reader_task = asyncio.create_task(self._read_loop(self._ws))
        logger.info("Connected to bridge host", url=self.url)

    async def send(self, channel: str, message: dict[str, Any]) -> None:
        if not self.is_open or self._ws is None:
            raise ChannelClosedError(f"Not connected to {self.url}")
        await self._ws.send_str(json.dumps({"channel": channel, "message": message}, default=str))

    def on_receive(self, channel: str, callback: ChannelCallback) -> Callable[[], None]:
        return self._listeners.add(channel, callback)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._ws is not None:
            await self._ws.close()

        if self._reader_task is not None:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
            self._reader_task = None

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

        self._listeners.clear()
        logger.info("Disconnected from bridge host", url=self.url)

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                self._handle_frame(msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning("WebSocket error", url=self.url, error=str(ws.exception()))
                break

        if not self._closed:
            logger.warning("Bridge host closed the connection", url=self.url)
            self._listeners.dispatch(EventChannel.DISCONNECT.value, {"peer_id": "backend"})

    def _handle_frame(self, data: str) -> None:
        try:
            frame = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON frame from host", url=self.url)
            return

        if not isinstance(frame, dict):
            return

        channel = frame.get("channel")
        message = frame.get("message")
        if isinstance(channel, str) and isinstance(message, dict):
            self._listeners.dispatch(channel, message)
        elif frame.get("type") == "error":
            logger.warning("Host reported error", url=self.url, message=frame.get("message"))
        else:
            logger.debug("Ignoring control frame", url=self.url, frame_type=frame.get("type"))
