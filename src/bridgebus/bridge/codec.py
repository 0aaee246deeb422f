"""Wire format for events and announcements crossing a bridge."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, ValidationError
from pydantic_core import PydanticSerializationError

from bridgebus.core.errors import EnvelopeDecodeError, EnvelopeEncodeError
from bridgebus.core.events.models import Event, EventMeta, EventSource


class WireMeta(BaseModel):
    """Serialized envelope metadata."""

    timestamp: int
    source: EventSource
    correlation_id: str | None = None


class WireEvent(BaseModel):
    """Serialized event envelope."""

    type: str = Field(min_length=1)
    payload: Any = None
    meta: WireMeta

    def to_event(self) -> Event:
        return Event(
            type=self.type,
            payload=self.payload,
            meta=EventMeta(
                timestamp=self.meta.timestamp,
                source=self.meta.source,
                correlation_id=self.meta.correlation_id,
            ),
        )


class SubscriptionAnnouncement(BaseModel):
    """A peer declaring (or withdrawing) interest in an event type."""

    event_type: str = Field(min_length=1)
    peer_id: str = "main"


class PeerDisconnect(BaseModel):
    """A host channel reporting that a peer went away."""

    peer_id: str


def encode_event(event: Event) -> dict[str, Any]:
    """
    Serialize an event for the wire.

    Raises:
        EnvelopeEncodeError: If the payload is not JSON-compatible
    """
    wire = WireEvent(
        type=event.type,
        payload=event.payload,
        meta=WireMeta(
            timestamp=event.meta.timestamp,
            source=event.meta.source,
            correlation_id=event.meta.correlation_id,
        ),
    )
    try:
        return wire.model_dump(mode="json")
    except PydanticSerializationError as e:
        raise EnvelopeEncodeError(f"Payload of {event.type} is not serializable: {e}") from e


def decode_event(message: Any) -> Event:
    """
    Parse a wire message into an event.

    Raises:
        EnvelopeDecodeError: If the message is not a valid envelope
    """
    try:
        return WireEvent.model_validate(message).to_event()
    except ValidationError as e:
        raise EnvelopeDecodeError(f"Invalid event envelope: {e}") from e


def encode_announcement(event_type: str, peer_id: str) -> dict[str, Any]:
    """Serialize a subscribe/unsubscribe announcement."""
    return SubscriptionAnnouncement(event_type=event_type, peer_id=peer_id).model_dump()


def decode_announcement(message: Any) -> SubscriptionAnnouncement:
    """
    Parse a subscribe/unsubscribe announcement.

    Raises:
        EnvelopeDecodeError: If the message is malformed
    """
    try:
        return SubscriptionAnnouncement.model_validate(message)
    except ValidationError as e:
        raise EnvelopeDecodeError(f"Invalid subscription announcement: {e}") from e


def decode_disconnect(message: Any) -> PeerDisconnect:
    """
    Parse a peer disconnect notice.

    Raises:
        EnvelopeDecodeError: If the message is malformed
    """
    try:
        return PeerDisconnect.model_validate(message)
    except ValidationError as e:
        raise EnvelopeDecodeError(f"Invalid disconnect notice: {e}") from e
