"""Configuration models using Pydantic."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BusConfig(BaseModel):
    """Event bus engine configuration."""

    debug: bool = False
    enable_history: bool = True
    max_history_size: int = Field(default=100, ge=0)
    enable_cross_process: bool = True


class BridgeConfig(BaseModel):
    """Process bridge configuration."""

    # "all" forwards every local event, "subscribed" only types a peer announced
    forward_policy: Literal["all", "subscribed"] = "all"
    announce_subscriptions: bool = True
    validate_inbound: bool = False
    peer_id: str = "main"
    outbox_size: int = Field(default=10000, ge=1)


class BackendBusConfig(BusConfig):
    """Bus configuration for the privileged side, which keeps a longer history."""

    max_history_size: int = Field(default=200, ge=0)


class BackendBridgeConfig(BridgeConfig):
    """Bridge configuration for the privileged side.

    The privileged side validates what the sandboxed side sends and does not
    announce its own subscriptions.
    """

    announce_subscriptions: bool = False
    validate_inbound: bool = True


class ServerConfig(BaseModel):
    """HTTP/WebSocket host configuration."""

    host: str = "127.0.0.1"
    port: int = Field(default=8765, ge=1, le=65535)
    cors_origins: list[str] = ["*"]


class LogConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    structured: bool = False
    file: Path | None = None
    max_size_mb: int = Field(default=100, ge=1)
    backup_count: int = Field(default=5, ge=1)


class Settings(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BRIDGEBUS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    backend: BackendBusConfig = Field(default_factory=BackendBusConfig)
    frontend: BusConfig = Field(default_factory=BusConfig)
    backend_bridge: BackendBridgeConfig = Field(default_factory=BackendBridgeConfig)
    frontend_bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_yaml(cls, path: Path | str) -> Settings:
        """Load configuration from YAML file."""
        import yaml

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open() as f:
            data = yaml.safe_load(f)

        return cls(**data) if data else cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create configuration from dictionary."""
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return self.model_dump(mode="json")

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        import yaml

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with path.open("w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
