"""HTTP/WebSocket host for the event bus."""

from bridgebus.api.app import create_app

__all__ = ["create_app"]
