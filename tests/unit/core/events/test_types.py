"""Tests for the event type registry and envelope helpers."""

from __future__ import annotations

import re

import pytest

from bridgebus.core.errors import PayloadValidationError
from bridgebus.core.events.models import EventSource
from bridgebus.core.events.types import (
    EVENT_PAYLOADS,
    EventType,
    create_event,
    event_key,
    generate_correlation_id,
    generate_subscription_id,
    lookup_event_type,
    validate_payload,
)

# ============================================================================
# REGISTRY TESTS
# ============================================================================


class TestRegistry:
    """Tests for EventType and the payload table."""

    def test_every_type_has_a_payload_entry(self):
        """Test that the dispatch table is exhaustive."""
        assert set(EVENT_PAYLOADS) == set(EventType)

    def test_wire_names_use_colon_namespaces(self):
        """Test naming convention of event values."""
        for member in EventType:
            namespace, _, name = member.value.partition(":")
            assert namespace and name

    def test_unit_events(self):
        """Test that lifecycle events carry no payload."""
        for member in (
            EventType.APP_READY,
            EventType.APP_BEFORE_QUIT,
            EventType.APP_QUIT,
            EventType.SETTINGS_RESET,
        ):
            assert EVENT_PAYLOADS[member] is None

    def test_event_key_normalizes(self):
        """Test conversion of members and strings to wire names."""
        assert event_key(EventType.WINDOW_FOCUS) == "window:focus"
        assert event_key("custom:thing") == "custom:thing"

    def test_lookup_event_type(self):
        """Test registry lookup by wire name."""
        assert lookup_event_type("cross:sync") is EventType.CROSS_SYNC
        assert lookup_event_type("nope:nope") is None


# ============================================================================
# ID TESTS
# ============================================================================


class TestIds:
    """Tests for id generation."""

    def test_correlation_id_format(self):
        """Test evt_<ms>_<suffix> format."""
        assert re.match(r"^evt_\d+_[a-z0-9]{7}$", generate_correlation_id())

    def test_subscription_id_format(self):
        """Test sub_<ms>_<suffix> format."""
        assert re.match(r"^sub_\d+_[a-z0-9]{7}$", generate_subscription_id())

    def test_ids_are_unique(self):
        """Test that ids do not repeat within a burst."""
        ids = {generate_correlation_id() for _ in range(500)}
        assert len(ids) == 500


# ============================================================================
# ENVELOPE TESTS
# ============================================================================


class TestCreateEvent:
    """Tests for create_event."""

    def test_stamps_meta(self):
        """Test that timestamp and correlation id are filled in."""
        event = create_event(EventType.USER_ACTION, {"action": "click"}, EventSource.FRONTEND)
        assert event.type == "user:action"
        assert event.meta.source == EventSource.FRONTEND
        assert event.meta.timestamp > 0
        assert event.meta.correlation_id.startswith("evt_")

    def test_keeps_given_correlation_id(self):
        """Test that an explicit id is preserved."""
        event = create_event("a", correlation_id="evt_1_abc")
        assert event.meta.correlation_id == "evt_1_abc"

    def test_to_dict(self):
        """Test dictionary conversion."""
        event = create_event("a", {"x": 1}, correlation_id="evt_1_abc")
        data = event.to_dict()
        assert data["type"] == "a"
        assert data["payload"] == {"x": 1}
        assert data["meta"]["source"] == "backend"
        assert data["meta"]["correlation_id"] == "evt_1_abc"


# ============================================================================
# VALIDATION TESTS
# ============================================================================


class TestValidatePayload:
    """Tests for validate_payload."""

    def test_valid_payload(self):
        """Test that a matching payload passes."""
        payload = {"key": "theme", "value": "dark", "previous_value": "light"}
        assert validate_payload(EventType.SETTINGS_CHANGED, payload) == payload

    def test_optional_fields_may_be_omitted(self):
        """Test NotRequired fields."""
        validate_payload(EventType.WINDOW_CREATED, {"window_id": 1})

    def test_missing_required_field(self):
        """Test that a missing key is rejected."""
        with pytest.raises(PayloadValidationError) as exc_info:
            validate_payload(EventType.CROSS_NOTIFICATION, {"type": "info"})
        assert exc_info.value.event_type == "cross:notification"

    def test_wrong_field_type(self):
        """Test that a wrong value type is rejected."""
        with pytest.raises(PayloadValidationError):
            validate_payload(EventType.ERROR_HANDLED, {"error": "x", "handled": "not-a-bool"})

    def test_unit_event_rejects_payload(self):
        """Test that payload-less events reject a payload."""
        assert validate_payload(EventType.APP_READY, None) is None
        with pytest.raises(PayloadValidationError):
            validate_payload(EventType.APP_READY, {"unexpected": True})

    def test_unregistered_type_passes_through(self):
        """Test that ad-hoc event types are not validated."""
        payload = object()
        assert validate_payload("plugin:custom", payload) is payload
