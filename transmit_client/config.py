"""
Configuration loader from environment variables.
Every option can also be passed explicitly when building a client.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import Optional, Any


class Settings(BaseSettings):
    """
    Client settings loaded from ``TRANSMIT_*`` environment variables.
    All settings have sensible defaults for local development.
    """

    @field_validator("UNSUBSCRIBE_ON_LAST_HANDLER", "LOG_JSON", mode="before")
    @classmethod
    def strip_whitespace(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("HEARTBEAT_TIMEOUT", mode="before")
    @classmethod
    def zero_disables_heartbeat(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() in ("", "none", "0"):
            return None
        if v == 0:
            return None
        return v

    model_config = SettingsConfigDict(
        env_prefix="TRANSMIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ==========================================================================
    # Server
    # ==========================================================================
    BASE_URL: str = "http://localhost:3333"

    # ==========================================================================
    # Reconnection
    # ==========================================================================
    MAX_RECONNECT_ATTEMPTS: Optional[int] = Field(default=5, ge=0)  # None retries forever
    RECONNECT_DELAY_INITIAL: float = Field(default=1.0, ge=0)
    RECONNECT_DELAY_MAX: float = Field(default=30.0, ge=0)
    RECONNECT_DELAY_MULTIPLIER: float = Field(default=1.0, ge=1.0)  # 1.0 keeps a fixed interval

    # ==========================================================================
    # Heartbeat
    # ==========================================================================
    HEARTBEAT_TIMEOUT: Optional[float] = Field(default=60.0, gt=0)  # None disables detection
    HEARTBEAT_CHANNEL: str = "$$transmit/ping"

    # ==========================================================================
    # Subscriptions
    # ==========================================================================
    UNSUBSCRIBE_ON_LAST_HANDLER: bool = False

    # ==========================================================================
    # Control plane
    # ==========================================================================
    HTTP_TIMEOUT: float = Field(default=10.0, gt=0)
    XSRF_COOKIE_NAME: str = "XSRF-TOKEN"
    XSRF_HEADER_NAME: str = "X-XSRF-TOKEN"

    # ==========================================================================
    # Logging
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    LOG_JSON: bool = False

    @property
    def heartbeat_enabled(self) -> bool:
        return self.HEARTBEAT_TIMEOUT is not None


# Global settings instance
settings = Settings()
