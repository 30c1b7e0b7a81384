"""Configuration schema for the relay server.

Defines Pydantic models for loading and validating relay configuration
from YAML files and environment variables. Everything is read once at
startup.
"""

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.relay.errors import MissingCredential

DEFAULT_UPSTREAM_URL = "wss://api.openai.com/v1/realtime"
DEFAULT_UPSTREAM_MODEL = "gpt-4o-realtime-preview-2024-10-01"


class ServerConfig(BaseModel):
    """HTTP/WebSocket listener configuration."""

    host: str = Field(default="localhost", description="Bind hostname")
    port: int = Field(default=3000, ge=0, le=65535, description="Bind port (0 = ephemeral)")
    status_path: str = Field(default="/api/ws", description="JSON status endpoint path")
    static_dir: Path | None = Field(
        default=None,
        description="Directory served for all other paths (None = 404)",
    )
    max_message_bytes: int = Field(
        default=100 * 2**20,
        ge=1024,
        description="Maximum inbound WebSocket message size",
    )
    heartbeat_s: float | None = Field(
        default=None,
        gt=0,
        description="WebSocket ping interval for dead-peer detection (None = disabled)",
    )

    @field_validator("status_path")
    @classmethod
    def validate_status_path(cls, v: str) -> str:
        """Status path must be absolute."""
        if not v.startswith("/"):
            raise ValueError(f"status_path must start with '/', got '{v}'")
        return v


class UpstreamConfig(BaseModel):
    """Upstream realtime service configuration."""

    api_key: str = Field(default="", repr=False, description="Shared upstream credential")
    url: str = Field(default=DEFAULT_UPSTREAM_URL, description="Realtime WebSocket endpoint")
    model: str = Field(default=DEFAULT_UPSTREAM_MODEL, description="Realtime model name")
    connect_timeout_s: float = Field(
        default=30.0, gt=0, description="Bound on a single upstream connect attempt"
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Upstream endpoint must be a WebSocket URL."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"upstream url must use ws:// or wss://, got '{v}'")
        return v


class RelayConfig(BaseModel):
    """Root relay configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    dev: bool = Field(
        default=True,
        description="Development mode; selects http vs https in the advertised URL",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @property
    def protocol(self) -> str:
        """Scheme the server is advertised under."""
        return "http" if self.dev else "https"

    def require_credential(self) -> str:
        """Return the upstream credential.

        Raises:
            MissingCredential: If no credential is configured
        """
        if not self.upstream.api_key.strip():
            raise MissingCredential("OPENAI_API_KEY")
        return self.upstream.api_key

    @classmethod
    def from_yaml(cls, path: Path) -> "RelayConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        import yaml  # type: ignore[import-untyped]

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be a mapping: {path}")

        return cls.model_validate(_apply_env_overrides(data))

    @classmethod
    def load(cls, path: Path | None = None) -> "RelayConfig":
        """Load configuration from YAML if present, otherwise defaults plus environment.

        Args:
            path: Optional path to YAML configuration file

        Returns:
            Loaded configuration
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)

        return cls.model_validate(_apply_env_overrides({}))


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay environment variables onto raw config data."""
    server = data.setdefault("server", {})
    upstream = data.setdefault("upstream", {})

    if hostname := os.getenv("WEBSITE_HOSTNAME"):
        server["host"] = hostname
    if port := os.getenv("PORT"):
        server["port"] = int(port)

    if api_key := os.getenv("OPENAI_API_KEY"):
        upstream["api_key"] = api_key
    if model := os.getenv("OPENAI_REALTIME_MODEL"):
        upstream["model"] = model
    if url := os.getenv("OPENAI_REALTIME_URL"):
        upstream["url"] = url

    if log_level := os.getenv("LOG_LEVEL"):
        data["log_level"] = log_level
    if node_env := os.getenv("NODE_ENV"):
        data["dev"] = node_env != "production"

    return data
