"""Client settings powered by Pydantic BaseSettings."""

import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilient_http.http.config import ClientConfig
from resilient_http.http.constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)
from resilient_http.http.models import RetryPolicy


class HttpSettings(BaseSettings):
    """Environment overrides for the client, read from ``RESILIENT_HTTP_*``."""

    model_config = SettingsConfigDict(
        env_prefix="RESILIENT_HTTP_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    connect_timeout_seconds: float = Field(default=DEFAULT_CONNECT_TIMEOUT_SECONDS, gt=0)
    request_timeout_seconds: float = Field(default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0, le=10)
    base_delay_ms: float = Field(default=DEFAULT_BASE_DELAY_MS, ge=0)
    log_level: str = "INFO"
    json_logs: bool = True

    @property
    def log_level_value(self) -> int:
        """Numeric logging level, INFO when the name is unknown."""
        value = logging.getLevelName(self.log_level.upper())
        return value if isinstance(value, int) else logging.INFO

    def to_client_config(self, base: ClientConfig | None = None) -> ClientConfig:
        """Apply these settings over a base client configuration.

        Args:
            base: Configuration to override (defaults when omitted).

        Returns:
            New configuration. Only values supplied through the environment,
            a dotenv file or keyword arguments replace those of ``base``.
        """
        base = base or ClientConfig()
        explicit = self.model_fields_set

        retry_update = {
            name: getattr(self, name)
            for name in ("max_retries", "base_delay_ms")
            if name in explicit
        }
        update: dict[str, object] = {
            name: getattr(self, name)
            for name in ("connect_timeout_seconds", "request_timeout_seconds")
            if name in explicit
        }
        if retry_update:
            update["retry_policy"] = base.retry_policy.model_copy(update=retry_update)
        return base.model_copy(update=update)


def get_settings() -> HttpSettings:
    """Get a settings instance."""
    return HttpSettings()
