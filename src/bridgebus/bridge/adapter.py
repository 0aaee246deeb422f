"""Event bus that forwards local events across a process bridge."""

from __future__ import annotations

import asyncio
from contextvars import ContextVar
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING, Any, ClassVar

import structlog

from bridgebus.bridge.channel import BridgeChannel, EventChannel
from bridgebus.bridge.codec import (
    decode_announcement,
    decode_disconnect,
    decode_event,
    encode_announcement,
    encode_event,
)
from bridgebus.core.errors import (
    ChannelUnavailableError,
    EnvelopeDecodeError,
    EnvelopeEncodeError,
    PayloadValidationError,
)
from bridgebus.core.events.bus import EventBus
from bridgebus.core.events.models import (
    Event,
    EventBusStats,
    EventHandler,
    EventSource,
    Subscription,
)
from bridgebus.core.events.types import EventType, event_key, validate_payload
from bridgebus.core.models.config import BridgeConfig, BusConfig

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger(__name__)

_BRIDGE_COUNTERS = ("forwarded_events", "received_events", "dropped_messages")

# Set inside re-emission tasks; handlers started there inherit it
_reemitting: ContextVar[bool] = ContextVar("bridgebus_reemitting", default=False)


@dataclass
class BridgeStats(EventBusStats):
    """Bus statistics plus bridge traffic counters."""

    forwarded_events: int = 0
    received_events: int = 0
    dropped_messages: int = 0
    subscribed_peers: int = 0
    peer_subscriptions: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "forwarded_events": self.forwarded_events,
                "received_events": self.received_events,
                "dropped_messages": self.dropped_messages,
                "subscribed_peers": self.subscribed_peers,
                "peer_subscriptions": {
                    peer: list(types) for peer, types in self.peer_subscriptions.items()
                },
            }
        )
        return data


class BridgedEventBus(EventBus):
    """Event bus bound to one side of a bridging channel.

    Locally originated events are forwarded after local handlers settle.
    Inbound events are re-emitted locally with source ``cross-process`` and
    are never forwarded again. Without a usable channel the bus runs
    local-only.
    """

    side: ClassVar[str] = "bridge"
    default_event_source: ClassVar[EventSource] = EventSource.BACKEND
    outbound_channel: ClassVar[EventChannel] = EventChannel.EMIT
    inbound_channel: ClassVar[EventChannel] = EventChannel.RECEIVE

    def __init__(
        self,
        channel: BridgeChannel | None = None,
        config: BusConfig | None = None,
        bridge: BridgeConfig | None = None,
    ) -> None:
        """
        Initialize the bridged bus.

        Args:
            channel: Transport to the counterpart process (owned by this bus)
            config: Engine configuration
            bridge: Bridge configuration
        """
        super().__init__(config, default_source=self.default_event_source)
        self._channel = channel
        self._bridge = bridge or BridgeConfig()
        self._initialized = False
        self._bridged = False
        self._outbox: asyncio.Queue[tuple[str, dict[str, Any]]] | None = None
        self._inbox: asyncio.Queue[tuple[str, dict[str, Any]]] | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._stopped_tasks: list[asyncio.Task[None]] = []
        self._reemissions: set[asyncio.Task[Event]] = set()
        self._listener_removers: list[Callable[[], None]] = []
        self._peer_subscriptions: dict[str, set[str]] = {}
        self._bridge_counters = dict.fromkeys(_BRIDGE_COUNTERS, 0)

    @property
    def channel(self) -> BridgeChannel | None:
        """The owned bridging channel."""
        return self._channel

    @property
    def bridge_config(self) -> BridgeConfig:
        """Bridge configuration."""
        return self._bridge

    @property
    def is_bridged(self) -> bool:
        """Whether cross-process forwarding is active."""
        return self._bridged

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Attach to the channel, or fall back to local-only operation."""
        if self._initialized:
            return
        self._initialized = True

        if not self.config.enable_cross_process:
            logger.info("Cross-process forwarding disabled", side=self.side)
            return

        if self._channel is None or not self._channel.is_available:
            logger.warning(
                "Bridge channel not available, running local-only",
                side=self.side,
            )
            return

        try:
            await self._channel.open()
        except ChannelUnavailableError as e:
            logger.warning(
                "Failed to open bridge channel, running local-only",
                side=self.side,
                error=str(e),
            )
            return

        self._outbox = asyncio.Queue(maxsize=self._bridge.outbox_size)
        self._inbox = asyncio.Queue()
        for channel in (
            self.inbound_channel,
            EventChannel.SUBSCRIBE,
            EventChannel.UNSUBSCRIBE,
            EventChannel.DISCONNECT,
        ):
            remove = self._channel.on_receive(
                channel.value,
                partial(self._enqueue_inbound, channel.value),
            )
            self._listener_removers.append(remove)

        self._tasks = [
            asyncio.create_task(self._outbound_loop(self._outbox, self._channel)),
            asyncio.create_task(self._inbound_loop(self._inbox)),
        ]
        self._bridged = True

        for key in self.subscribed_types():
            self._announce(EventChannel.SUBSCRIBE, key)

        logger.info(
            "Event bus bridge initialized",
            side=self.side,
            forward_policy=self._bridge.forward_policy,
        )

    async def drain(self) -> None:
        """Wait until queued traffic is processed and re-emitted events settle.

        Called from a handler of an inbound event, it does not wait for
        re-emissions, since the caller's own re-emission is one of them.
        """
        if not self._bridged or self._inbox is None or self._outbox is None:
            return

        nested = _reemitting.get()
        while True:
            await self._inbox.join()
            if not nested:
                pending = [task for task in self._reemissions if not task.done()]
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)
            await self._outbox.join()

            settled = nested or all(task.done() for task in self._reemissions)
            if settled and self._inbox.empty() and self._outbox.empty():
                return

    def destroy(self) -> None:
        """Detach from the channel, stop the pumps and destroy the bus."""
        for remove in self._listener_removers:
            remove()
        self._listener_removers.clear()

        for task in self._tasks:
            task.cancel()
        self._stopped_tasks.extend(self._tasks)
        self._tasks.clear()

        self._bridged = False
        self._peer_subscriptions.clear()
        super().destroy()

    async def shutdown(self) -> None:
        """Flush pending traffic, destroy the bus and close the channel."""
        await self.drain()
        self.destroy()

        if self._stopped_tasks:
            await asyncio.gather(*self._stopped_tasks, return_exceptions=True)
            self._stopped_tasks.clear()

        if self._channel is not None:
            await self._channel.close()

    # ------------------------------------------------------------------
    # Subscriptions with announcements
    # ------------------------------------------------------------------

    def on(
        self,
        event_type: EventType | str,
        handler: EventHandler,
        *,
        once: bool = False,
        priority: int = 0,
    ) -> Subscription:
        key = event_key(event_type)
        first = key not in self._handlers
        subscription = super().on(key, handler, once=once, priority=priority)
        if first:
            self._announce(EventChannel.SUBSCRIBE, key)
        return subscription

    def off(self, event_type: EventType | str, subscription: Subscription) -> None:
        key = event_key(event_type)
        had_subscribers = key in self._handlers
        super().off(key, subscription)
        if had_subscribers and key not in self._handlers:
            self._announce(EventChannel.UNSUBSCRIBE, key)

    def off_all(self, event_type: EventType | str | None = None) -> None:
        before = set(self._handlers)
        super().off_all(event_type)
        for key in before - set(self._handlers):
            self._announce(EventChannel.UNSUBSCRIBE, key)

    def _announce(self, channel: EventChannel, key: str) -> None:
        if not self._bridged or not self._bridge.announce_subscriptions:
            return
        self._enqueue_outbound(channel.value, encode_announcement(key, self._bridge.peer_id))

    # ------------------------------------------------------------------
    # Peer interest
    # ------------------------------------------------------------------

    @property
    def peers(self) -> list[str]:
        """Peers that currently announce at least one subscription."""
        return [peer for peer, types in self._peer_subscriptions.items() if types]

    def peer_interest(self, event_type: EventType | str) -> list[str]:
        """Peers that announced interest in ``event_type``."""
        key = event_key(event_type)
        return [peer for peer, types in self._peer_subscriptions.items() if key in types]

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def emit(
        self,
        event_type: EventType | str,
        payload: Any = None,
        source: EventSource | None = None,
        *,
        correlation_id: str | None = None,
    ) -> Event:
        """Emit locally, then forward a copy across the bridge when allowed.

        Returns once local handlers have settled; forwarding is queued and
        does not delay the caller.
        """
        event = await super().emit(event_type, payload, source, correlation_id=correlation_id)
        if self._should_forward(event):
            self._forward(event)
        return event

    def _should_forward(self, event: Event) -> bool:
        if not self._bridged or not self.config.enable_cross_process:
            return False
        if event.meta.source is EventSource.CROSS_PROCESS:
            return False
        if self._bridge.forward_policy == "subscribed":
            return bool(self.peer_interest(event.type))
        return True

    def _forward(self, event: Event) -> None:
        try:
            message = encode_event(event)
        except EnvelopeEncodeError as e:
            self._drop("Dropped unserializable event", event_type=event.type, error=str(e))
            return
        self._enqueue_outbound(self.outbound_channel.value, message)

    def _enqueue_outbound(self, channel: str, message: dict[str, Any]) -> None:
        if self._outbox is None:
            return
        try:
            self._outbox.put_nowait((channel, message))
        except asyncio.QueueFull:
            self._drop("Bridge outbox full, dropping message", channel=channel)

    async def _outbound_loop(
        self,
        outbox: asyncio.Queue[tuple[str, dict[str, Any]]],
        transport: BridgeChannel,
    ) -> None:
        while True:
            channel, message = await outbox.get()
            try:
                await transport.send(channel, message)
                if channel == self.outbound_channel.value:
                    self._bridge_counters["forwarded_events"] += 1
            except Exception as e:
                self._drop("Failed to send bridge message", channel=channel, error=str(e))
            finally:
                outbox.task_done()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _enqueue_inbound(self, channel: str, message: dict[str, Any]) -> None:
        if self._inbox is not None and self._bridged:
            self._inbox.put_nowait((channel, message))

    async def _inbound_loop(self, inbox: asyncio.Queue[tuple[str, dict[str, Any]]]) -> None:
        while True:
            channel, message = await inbox.get()
            try:
                self._handle_inbound(channel, message)
            except Exception as e:
                logger.exception("Inbound bridge message failed", channel=channel, error=str(e))
            finally:
                inbox.task_done()

    def _handle_inbound(self, channel: str, message: dict[str, Any]) -> None:
        if channel == self.inbound_channel.value:
            self._receive_event(message)
        elif channel == EventChannel.SUBSCRIBE.value:
            self._receive_announcement(message, subscribed=True)
        elif channel == EventChannel.UNSUBSCRIBE.value:
            self._receive_announcement(message, subscribed=False)
        elif channel == EventChannel.DISCONNECT.value:
            self._receive_disconnect(message)

    def _receive_event(self, message: dict[str, Any]) -> None:
        try:
            event = decode_event(message)
            if self._bridge.validate_inbound:
                validate_payload(event.type, event.payload)
        except (EnvelopeDecodeError, PayloadValidationError) as e:
            self._drop("Dropped invalid inbound event", error=str(e))
            return

        self._bridge_counters["received_events"] += 1
        # Each re-emission runs in its own task. Tasks start in creation order,
        # so fan-out order follows arrival order.
        task = asyncio.create_task(self._reemit(event))
        self._reemissions.add(task)
        task.add_done_callback(self._reemissions.discard)

    async def _reemit(self, event: Event) -> Event:
        _reemitting.set(True)
        return await EventBus.emit(
            self,
            event.type,
            event.payload,
            EventSource.CROSS_PROCESS,
            correlation_id=event.meta.correlation_id,
        )

    def _receive_announcement(self, message: dict[str, Any], *, subscribed: bool) -> None:
        try:
            announcement = decode_announcement(message)
        except EnvelopeDecodeError as e:
            self._drop("Dropped invalid announcement", error=str(e))
            return

        types = self._peer_subscriptions.setdefault(announcement.peer_id, set())
        if subscribed:
            types.add(announcement.event_type)
        else:
            types.discard(announcement.event_type)
            if not types:
                del self._peer_subscriptions[announcement.peer_id]

        logger.debug(
            "Peer subscription updated",
            side=self.side,
            peer_id=announcement.peer_id,
            event_type=announcement.event_type,
            subscribed=subscribed,
        )

    def _receive_disconnect(self, message: dict[str, Any]) -> None:
        try:
            notice = decode_disconnect(message)
        except EnvelopeDecodeError as e:
            self._drop("Dropped invalid disconnect notice", error=str(e))
            return

        if self._peer_subscriptions.pop(notice.peer_id, None) is not None:
            logger.info("Peer disconnected", side=self.side, peer_id=notice.peer_id)

    def _drop(self, reason: str, **context: Any) -> None:
        self._bridge_counters["dropped_messages"] += 1
        logger.warning(reason, side=self.side, **context)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_stats(self) -> BridgeStats:
        """Return bus statistics including bridge counters and peer interest."""
        base = super().get_stats()
        return BridgeStats(
            total_events=base.total_events,
            events_by_type=base.events_by_type,
            active_subscriptions=base.active_subscriptions,
            failed_handlers=base.failed_handlers,
            subscribed_peers=len(self.peers),
            peer_subscriptions={
                peer: sorted(types) for peer, types in self._peer_subscriptions.items() if types
            },
            **self._bridge_counters,
        )

    def reset_stats(self) -> None:
        """Zero event, failure and bridge traffic counters."""
        super().reset_stats()
        self._bridge_counters = dict.fromkeys(_BRIDGE_COUNTERS, 0)
