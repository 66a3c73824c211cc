"""Centralized cache configuration using pydantic-settings.

All configuration is loaded from ``CACHE_*`` environment variables and
``.env`` files. Keyword arguments passed to :class:`CacheSettings` take
precedence over the environment.
"""

from enum import Enum
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

NAMESPACE_DELIMITER = "::"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CacheSettings(BaseSettings):
    """Cache service settings.

    ``type`` selects the backend adapter; ``endpoint`` may be omitted, in
    which case the adapter connects to its protocol's default local port.
    """

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    # Backend selection
    type: Literal["memcached", "redis"] = Field("redis", description="Cache backend type")
    endpoint: str | None = Field(None, description="Cache server endpoint (host:port or URL)")

    # Key scoping and expiry
    ns: str = Field("global", min_length=1, description="Namespace used as cache key prefix")
    default_timeout: int = Field(
        0,
        ge=0,
        description="Default TTL in seconds applied when a write omits its timeout (0 = none)",
    )

    # Memory backend
    memory_max_size: int = Field(10000, gt=0, description="Maximum entries held in memory")

    # Client connection settings
    connect_timeout: float = Field(5.0, gt=0, description="Connect timeout in seconds")
    socket_timeout: float = Field(5.0, gt=0, description="Socket timeout in seconds")
    max_connections: int = Field(50, gt=0, description="Maximum connections in pool")

    # Logging
    log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
    log_format: Literal["json", "console"] = Field("console", description="Log renderer")

    @field_validator("ns")
    @classmethod
    def validate_ns(cls, v: str) -> str:
        """Reject namespaces that would break key prefix stripping."""
        if NAMESPACE_DELIMITER in v:
            raise ValueError(f"namespace must not contain '{NAMESPACE_DELIMITER}'")
        return v


# Global settings instance
_settings: CacheSettings | None = None


def get_settings() -> CacheSettings:
    """Get global settings instance (singleton)."""
    global _settings
    if _settings is None:
        _settings = CacheSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings (mainly for testing)."""
    global _settings
    _settings = None
