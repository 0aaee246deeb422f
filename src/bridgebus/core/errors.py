"""Exception hierarchy for bridgebus."""

from __future__ import annotations


class BridgeBusError(Exception):
    """Base class for all bridgebus errors."""

    pass


class PayloadValidationError(BridgeBusError, ValueError):
    """Raised when a payload does not match its registered shape."""

    def __init__(self, event_type: str, detail: str) -> None:
        self.event_type = event_type
        self.detail = detail
        super().__init__(f"Invalid payload for {event_type}: {detail}")


class ChannelUnavailableError(BridgeBusError):
    """Raised when a bridging channel cannot be opened."""

    pass


class ChannelClosedError(BridgeBusError):
    """Raised when sending on a channel that is closed or never opened."""

    pass


class EnvelopeDecodeError(BridgeBusError, ValueError):
    """Raised when an inbound bridge message is malformed."""

    pass


class EnvelopeEncodeError(BridgeBusError, ValueError):
    """Raised when an outbound event cannot be serialized."""

    pass
