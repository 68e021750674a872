"""Domain-specific error types for the HTTP client core."""

from enum import Enum


class TransportErrorKind(str, Enum):
    """Classification of transport failures for retry decisions and telemetry.

    - TIMEOUT: Connect or request timeout elapsed
    - CONNECTION_RESET: Peer closed or reset the connection mid-exchange
    - DNS_FAILURE: Host name could not be resolved
    - CONNECTION_REFUSED: Nothing accepted the connection
    - TRANSIENT_RESOLUTION_FAILURE: Temporary resolver failure (EAI_AGAIN)
    - UNKNOWN: Unclassified transport error
    """

    TIMEOUT = "timeout"
    CONNECTION_RESET = "connection-reset"
    DNS_FAILURE = "dns-failure"
    CONNECTION_REFUSED = "connection-refused"
    TRANSIENT_RESOLUTION_FAILURE = "transient-resolution-failure"
    UNKNOWN = "unknown"


class HttpClientError(Exception):
    """Base class for all errors raised by the client core."""

    code = "client-error"


class TransportError(HttpClientError):
    """Network-level failure while dispatching a request.

    Attributes:
        kind: Classified failure kind.
        message: Human-readable description.
        url: URL of the failed request, if known.
    """

    def __init__(
        self,
        kind: TransportErrorKind,
        message: str,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.url = url

    @property
    def code(self) -> str:
        """Stable error code used in log events."""
        return self.kind.value


class DecompressionError(HttpClientError):
    """Body could not be decoded for its declared content encoding."""

    code = "decompression-error"

    def __init__(self, encoding: str, message: str) -> None:
        super().__init__(f"Failed to decode {encoding!r} body: {message}")
        self.encoding = encoding


class ConfigError(HttpClientError):
    """Malformed URL or missing required request field."""

    code = "config-error"
