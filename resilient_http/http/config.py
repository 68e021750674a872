"""Configuration models for the HTTP client core."""

from pathlib import Path
from typing import Annotated, Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from resilient_http.http.constants import (
    DEFAULT_BROWSER_HEADERS,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)
from resilient_http.http.errors import ConfigError
from resilient_http.http.models import RetryPolicy


logger = structlog.get_logger()


class ClientConfig(BaseModel):
    """Configuration for one ``HttpClient``.

    Central configuration for timeouts, retry policy and the static
    header template sent with every request.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    connect_timeout_seconds: Annotated[float, Field(gt=0, le=600)] = (
        DEFAULT_CONNECT_TIMEOUT_SECONDS
    )
    request_timeout_seconds: Annotated[float, Field(gt=0, le=3600)] | None = (
        DEFAULT_REQUEST_TIMEOUT_SECONDS
    )
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    default_headers: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_BROWSER_HEADERS),
        description="Header template applied before per-call headers",
    )
    cookies: dict[str, str] = Field(default_factory=dict, description="Initial cookies")
    follow_redirects: bool = True
    max_redirects: Annotated[int, Field(ge=0, le=100)] = DEFAULT_MAX_REDIRECTS
    fingerprint: str | None = Field(
        default=None, description="Session identity placeholder, not interpreted"
    )

    @field_validator("default_headers")
    @classmethod
    def lowercase_header_names(cls, v: dict[str, str]) -> dict[str, str]:
        """Store header names lower-cased."""
        return {key.strip().lower(): value for key, value in v.items() if key.strip()}


def load_client_config(path: Path) -> ClientConfig:
    """Load a ``ClientConfig`` from a YAML file.

    Args:
        path: YAML file with ClientConfig fields at the top level.

    Returns:
        Validated configuration.

    Raises:
        ConfigError: If the file is missing, unparsable or invalid.
    """
    try:
        raw: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        msg = f"Config file not found: {path}"
        raise ConfigError(msg) from e
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in {path}: {e}"
        raise ConfigError(msg) from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        msg = f"Config file {path} must contain a mapping"
        raise ConfigError(msg)

    try:
        config = ClientConfig.model_validate(raw)
    except ValidationError as e:
        logger.warning("client_config_invalid", path=str(path), errors=e.error_count())
        msg = f"Validation failed for {path}: {e.error_count()} errors"
        raise ConfigError(msg) from e

    logger.debug("client_config_loaded", path=str(path))
    return config
