"""Data models for the HTTP client core."""

import json
import random
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Annotated, Any
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from bs4.element import Tag
from pydantic import BaseModel, ConfigDict, Field, field_validator

from resilient_http.http.constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_JITTER_FACTOR,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_STATUSES,
    DEFAULT_STAGE,
)
from resilient_http.http.errors import ConfigError, TransportErrorKind
from resilient_http.http.headers import HeaderMap
from resilient_http.http.url import origin_of


RETRYABLE_ERROR_KINDS = frozenset(
    {
        TransportErrorKind.CONNECTION_RESET,
        TransportErrorKind.TIMEOUT,
        TransportErrorKind.DNS_FAILURE,
        TransportErrorKind.CONNECTION_REFUSED,
        TransportErrorKind.TRANSIENT_RESOLUTION_FAILURE,
    }
)


def _coerce_headers(value: Any) -> HeaderMap:
    if value is None:
        return HeaderMap()
    if isinstance(value, HeaderMap):
        return value
    if isinstance(value, Mapping):
        return HeaderMap(value)
    msg = f"headers must be a mapping, got {type(value).__name__}"
    raise ValueError(msg)


class Request(BaseModel):
    """Outgoing HTTP request with a fully resolved URL."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    method: Annotated[str, Field(min_length=1)] = "GET"
    url: str
    headers: HeaderMap = Field(default_factory=HeaderMap)
    body: bytes | str | None = None

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        """Upper-case the method name."""
        return v.strip().upper()

    @field_validator("url")
    @classmethod
    def validate_absolute_url(cls, v: str) -> str:
        """Reject relative or non-HTTP URLs."""
        parts = urlsplit(v)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            msg = f"Request URL must be an absolute http(s) URL: {v!r}"
            raise ConfigError(msg)
        return v

    @field_validator("headers", mode="before")
    @classmethod
    def coerce_headers(cls, v: Any) -> HeaderMap:
        """Accept any mapping as headers."""
        return _coerce_headers(v)

    @property
    def origin(self) -> str:
        """Scheme + host + port of the request URL."""
        return origin_of(self.url)

    @property
    def body_bytes(self) -> bytes | None:
        """Body encoded for the wire."""
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return self.body


class RawResponse(BaseModel):
    """Undecoded response as returned by the transport.

    ``url`` and ``redirect_count`` describe the final hop once the client has
    followed any redirects.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    status_code: int = Field(ge=100, le=999)
    headers: HeaderMap = Field(default_factory=HeaderMap)
    body: bytes = b""
    url: str = ""
    redirect_count: int = Field(default=0, ge=0)

    @field_validator("headers", mode="before")
    @classmethod
    def coerce_headers(cls, v: Any) -> HeaderMap:
        """Accept any mapping as headers."""
        return _coerce_headers(v)


class Response(BaseModel):
    """Decoded HTTP response handed back to callers.

    ``text()``, ``json()`` and ``html()`` parse the body on every call, so
    they can be invoked any number of times.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    status_code: int = Field(ge=100, le=999)
    headers: HeaderMap = Field(default_factory=HeaderMap)
    body: bytes = b""
    url: str = ""

    @field_validator("headers", mode="before")
    @classmethod
    def coerce_headers(cls, v: Any) -> HeaderMap:
        """Accept any mapping as headers."""
        return _coerce_headers(v)

    @property
    def status(self) -> int:
        """Alias of ``status_code``."""
        return self.status_code

    @property
    def content_type(self) -> str:
        """Media type without parameters, lower-cased."""
        value = self.headers.get_first("content-type")
        return value.split(";", 1)[0].strip().lower()

    @property
    def charset(self) -> str:
        """Charset declared in Content-Type, defaulting to utf-8."""
        value = self.headers.get_first("content-type")
        for param in value.split(";")[1:]:
            name, _, charset = param.partition("=")
            if name.strip().lower() == "charset" and charset.strip():
                return charset.strip().strip('"')
        return "utf-8"

    def text(self, encoding: str | None = None) -> str:
        """Decode the body as text."""
        codec = encoding or self.charset
        try:
            return self.body.decode(codec, errors="replace")
        except LookupError:
            return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Parse the body as JSON.

        Raises:
            json.JSONDecodeError: If the body is not valid JSON.
        """
        return json.loads(self.text())

    def html(self, selector: str | None = None) -> BeautifulSoup | list[Tag]:
        """Parse the body as HTML.

        Args:
            selector: Optional CSS selector applied to the parsed document.

        Returns:
            The parsed document, or the matching elements when a selector
            is given.
        """
        soup = BeautifulSoup(self.text(), "lxml")
        if selector:
            return soup.select(selector)
        return soup


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Uses exponential backoff with additive jitter:
    delay = base_delay_ms * 2^(attempt - 1) * (1 + jitter_factor * U[0, 1))
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: Annotated[int, Field(ge=0, le=10)] = DEFAULT_MAX_RETRIES
    base_delay_ms: Annotated[float, Field(ge=0, le=60000)] = DEFAULT_BASE_DELAY_MS
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = DEFAULT_JITTER_FACTOR
    retry_statuses: frozenset[int] = DEFAULT_RETRY_STATUSES
    retryable_error_kinds: frozenset[TransportErrorKind] = RETRYABLE_ERROR_KINDS
    retry_on_error_methods: frozenset[str] | None = Field(
        default=None,
        description="Methods retried on transport errors; None retries every method",
    )

    @field_validator("retry_on_error_methods")
    @classmethod
    def normalize_methods(cls, v: frozenset[str] | None) -> frozenset[str] | None:
        """Upper-case method names."""
        if v is None:
            return None
        return frozenset(method.upper() for method in v)

    def is_retryable_status(self, status_code: int) -> bool:
        """Check whether a response status warrants another attempt."""
        return status_code in self.retry_statuses

    def is_retryable_error(
        self,
        kind: TransportErrorKind,
        method: str,
        retry_on_error: bool | None = None,
    ) -> bool:
        """Check whether a transport error warrants another attempt.

        Args:
            kind: Classified transport error.
            method: HTTP method of the failed request.
            retry_on_error: Per-call override of the method rule.

        Returns:
            True if the error may be retried.
        """
        if kind not in self.retryable_error_kinds:
            return False
        if retry_on_error is not None:
            return retry_on_error
        if self.retry_on_error_methods is None:
            return True
        return method.upper() in self.retry_on_error_methods

    def can_retry(self, attempt: int, max_retries: int | None = None) -> bool:
        """Check whether another attempt is allowed after ``attempt`` (1-indexed)."""
        limit = self.max_retries if max_retries is None else max_retries
        return attempt <= limit

    def get_delay_ms(self, attempt: int, rng: random.Random | None = None) -> float:
        """Calculate delay before the attempt following ``attempt``.

        Args:
            attempt: Attempt that just failed (1-indexed).
            rng: Optional random source.

        Returns:
            Delay in milliseconds, in [backoff, backoff * (1 + jitter_factor)).
        """
        backoff = self.base_delay_ms * (2 ** (attempt - 1))
        draw = rng.random() if rng is not None else random.random()  # noqa: S311
        return backoff + draw * self.jitter_factor * backoff


class RequestConfig(BaseModel):
    """Per-call request configuration accepted by ``HttpClient.send_request``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: Annotated[str, Field(min_length=1)] = "GET"
    url: str
    headers: dict[str, str | None] = Field(default_factory=dict)
    body: bytes | str | None = None
    stage: str = DEFAULT_STAGE
    max_retries: Annotated[int, Field(ge=0, le=10)] | None = None
    follow_redirects: bool | None = None
    retry_on_error: bool | None = None


@dataclass
class RetryContext:
    """Ephemeral per-attempt telemetry context for one logical call."""

    request_id: str
    stage: str
    attempt: int = 1
    started_at: float = field(default_factory=time.perf_counter)

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the logical call started."""
        return (time.perf_counter() - self.started_at) * 1000


@dataclass(frozen=True)
class FilePart:
    """File field of a multipart body."""

    name: str
    data: bytes | str
    type: str = "application/octet-stream"
