"""Configuration models."""

from bridgebus.core.models.config import (
    BackendBridgeConfig,
    BackendBusConfig,
    BridgeConfig,
    BusConfig,
    LogConfig,
    ServerConfig,
    Settings,
)

__all__ = [
    "BackendBridgeConfig",
    "BackendBusConfig",
    "BridgeConfig",
    "BusConfig",
    "LogConfig",
    "ServerConfig",
    "Settings",
]
