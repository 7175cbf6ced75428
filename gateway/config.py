"""
Configuration Management

Uses Pydantic BaseSettings to load configuration from environment variables.
All settings can be overridden via .env file or environment variables.

Environment Variables:
    PORT: HTTP listen port (default: 3000)
    WEBHOOK_URL: Where inbound events are forwarded (empty disables relay)
    API_KEY: Shared secret for the x-api-key header (empty disables the guard)
    PROTOCOL_BACKEND: "module:factory" path of the protocol session capability
    CREDENTIAL_BACKEND: "file" or "redis"
    APP_ENV: Environment name (development/staging/production)
    DEBUG: Enable debug mode (default: False)
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    host: str = "0.0.0.0"
    """Host to bind the application server."""

    port: int = 3000
    """Port to bind the application server."""

    shutdown_grace_period: int = 5
    """Seconds uvicorn waits for in-flight requests on SIGTERM."""

    # Security
    api_key: str = ""
    """Shared API key expected in the x-api-key header.

    Empty disables the guard on /send and /send-media.
    """

    # Webhook relay
    webhook_url: str = ""
    """Webhook sink for inbound message and receipt events.

    Empty disables forwarding. Deliveries are fire-and-forget.
    """

    webhook_timeout: float = 5.0
    """Per-delivery timeout in seconds."""

    auto_reply_enabled: bool = True
    """Answer "ping" messages with "pong"."""

    # Protocol session
    protocol_backend: str = ""
    """Import path of the protocol capability factory.

    Format: package.module:factory
    The factory is called with the Settings instance and must return an
    object implementing ProtocolBackend. Empty leaves the session
    disconnected.
    """

    reconnect_strategy: Literal["immediate", "backoff"] = "backoff"
    """Reconnect policy after a non-logout disconnect.

    Options:
    - immediate: retry after reconnect_min_delay every time
    - backoff: exponential backoff from reconnect_min_delay up to
      reconnect_max_delay
    """

    reconnect_min_delay: float = 1.0
    """Minimum delay between connect attempts in seconds."""

    reconnect_max_delay: float = 60.0
    """Backoff ceiling in seconds."""

    # Credentials
    credential_backend: Literal["file", "redis"] = "file"
    """Where session credentials are persisted."""

    auth_dir: str = "auth_info"
    """Directory holding the credential blob (file backend)."""

    redis_url: str = "redis://localhost:6379/0"
    """Redis connection URL (redis backend).

    Format: redis://host:port/db
    """

    # Uploads
    upload_dir: str = "uploads"
    """Staging directory for /send-media uploads. Entries are transient."""

    # Application Environment
    app_env: Literal["development", "staging", "production"] = "development"
    """Current application environment."""

    debug: bool = False
    """Enable debug logging and detailed error responses."""

    app_name: str = "wa-gateway"
    """Application name."""

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def webhook_enabled(self) -> bool:
        """True when inbound events should be forwarded."""
        return bool(self.webhook_url.strip())

    @property
    def auth_enabled(self) -> bool:
        """True when guarded routes require x-api-key."""
        return bool(self.api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Example:
        >>> from gateway.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.port)
        3000
    """
    return Settings()


# Module-level settings instance for easy imports
settings = get_settings()
