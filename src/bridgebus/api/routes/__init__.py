"""API route modules."""

from bridgebus.api.routes import events

__all__ = ["events"]
