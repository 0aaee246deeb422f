"""Event type registry, payload shapes and envelope helpers."""

from __future__ import annotations

import random
import string
import time
from enum import Enum
from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter, ValidationError
from typing_extensions import NotRequired, TypedDict

from bridgebus.core.errors import PayloadValidationError
from bridgebus.core.events.models import Event, EventMeta, EventSource


class EventType(str, Enum):
    """All event types known to the application."""

    # App lifecycle
    APP_INITIALIZED = "app:initialized"
    APP_READY = "app:ready"
    APP_BEFORE_QUIT = "app:before-quit"
    APP_QUIT = "app:quit"

    # Window lifecycle
    WINDOW_CREATED = "window:created"
    WINDOW_CLOSED = "window:closed"
    WINDOW_FOCUS = "window:focus"
    WINDOW_BLUR = "window:blur"
    WINDOW_MINIMIZE = "window:minimize"
    WINDOW_MAXIMIZE = "window:maximize"
    WINDOW_RESTORE = "window:restore"

    # Settings
    SETTINGS_CHANGED = "settings:changed"
    SETTINGS_LOADED = "settings:loaded"
    SETTINGS_RESET = "settings:reset"

    # User activity
    USER_ACTION = "user:action"
    USER_PREFERENCE_CHANGE = "user:preference-change"

    # Cross-process
    CROSS_SYNC = "cross:sync"
    CROSS_NOTIFICATION = "cross:notification"

    # Errors
    ERROR_UNCAUGHT = "error:uncaught"
    ERROR_HANDLED = "error:handled"


# ============================================================================
# PAYLOAD SHAPES
# ============================================================================


class AppInitializedPayload(TypedDict):
    version: str


class WindowCreatedPayload(TypedDict):
    window_id: int
    title: NotRequired[str]


class WindowPayload(TypedDict):
    window_id: int


class SettingsChangedPayload(TypedDict):
    key: str
    value: Any
    previous_value: NotRequired[Any]


class SettingsLoadedPayload(TypedDict):
    settings: dict[str, Any]


class UserActionPayload(TypedDict):
    action: str
    details: NotRequired[dict[str, Any]]


class UserPreferenceChangePayload(TypedDict):
    category: str
    preference: str
    value: Any


class CrossSyncPayload(TypedDict):
    channel: str
    data: Any


class CrossNotificationPayload(TypedDict):
    type: str
    message: str


class ErrorUncaughtPayload(TypedDict):
    error: str
    error_type: NotRequired[str]
    context: NotRequired[str]


class ErrorHandledPayload(TypedDict):
    error: str
    error_type: NotRequired[str]
    handled: bool


# Exhaustive dispatch table; None marks a unit (payload-less) event
EVENT_PAYLOADS: dict[EventType, type | None] = {
    EventType.APP_INITIALIZED: AppInitializedPayload,
    EventType.APP_READY: None,
    EventType.APP_BEFORE_QUIT: None,
    EventType.APP_QUIT: None,
    EventType.WINDOW_CREATED: WindowCreatedPayload,
    EventType.WINDOW_CLOSED: WindowPayload,
    EventType.WINDOW_FOCUS: WindowPayload,
    EventType.WINDOW_BLUR: WindowPayload,
    EventType.WINDOW_MINIMIZE: WindowPayload,
    EventType.WINDOW_MAXIMIZE: WindowPayload,
    EventType.WINDOW_RESTORE: WindowPayload,
    EventType.SETTINGS_CHANGED: SettingsChangedPayload,
    EventType.SETTINGS_LOADED: SettingsLoadedPayload,
    EventType.SETTINGS_RESET: None,
    EventType.USER_ACTION: UserActionPayload,
    EventType.USER_PREFERENCE_CHANGE: UserPreferenceChangePayload,
    EventType.CROSS_SYNC: CrossSyncPayload,
    EventType.CROSS_NOTIFICATION: CrossNotificationPayload,
    EventType.ERROR_UNCAUGHT: ErrorUncaughtPayload,
    EventType.ERROR_HANDLED: ErrorHandledPayload,
}

_ID_ALPHABET = string.ascii_lowercase + string.digits


def event_key(event_type: EventType | str) -> str:
    """Normalize an event type to its wire name."""
    if isinstance(event_type, EventType):
        return event_type.value
    return str(event_type)


def lookup_event_type(event_type: EventType | str) -> EventType | None:
    """Return the registered member for a wire name, or None if unregistered."""
    try:
        return EventType(event_key(event_type))
    except ValueError:
        return None


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _generate_id(prefix: str) -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"{prefix}_{now_ms()}_{suffix}"


def generate_correlation_id() -> str:
    """Generate an event correlation id (``evt_<ms>_<7 chars>``)."""
    return _generate_id("evt")


def generate_subscription_id() -> str:
    """Generate a subscription id (``sub_<ms>_<7 chars>``)."""
    return _generate_id("sub")


def create_event(
    event_type: EventType | str,
    payload: Any = None,
    source: EventSource = EventSource.BACKEND,
    correlation_id: str | None = None,
) -> Event:
    """
    Build an event envelope stamped with the current time.

    Args:
        event_type: Registered or ad-hoc event type
        payload: Event payload
        source: Originating side
        correlation_id: Tracing id, generated when omitted

    Returns:
        The new event
    """
    return Event(
        type=event_key(event_type),
        payload=payload,
        meta=EventMeta(
            timestamp=now_ms(),
            source=source,
            correlation_id=correlation_id or generate_correlation_id(),
        ),
    )


@lru_cache(maxsize=None)
def _payload_adapter(shape: type) -> TypeAdapter[Any]:
    return TypeAdapter(shape)


def validate_payload(event_type: EventType | str, payload: Any) -> Any:
    """
    Check a payload against the shape registered for its event type.

    Unregistered event types pass through unchanged.

    Raises:
        PayloadValidationError: If the payload does not match
    """
    member = lookup_event_type(event_type)
    if member is None:
        return payload

    shape = EVENT_PAYLOADS[member]
    if shape is None:
        if payload is not None:
            raise PayloadValidationError(member.value, "expected no payload")
        return None

    try:
        return _payload_adapter(shape).validate_python(payload)
    except ValidationError as e:
        raise PayloadValidationError(member.value, str(e)) from e
