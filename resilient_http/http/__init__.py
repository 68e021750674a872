"""HTTP client core with session continuity, retries and decoding.

This module provides resilient HTTP operations with:
- Per-origin pooled transports with connect and request timeouts
- Configurable retry policy with exponential backoff and jitter
- Cookie jar and referer chaining across requests
- gzip, deflate and brotli body decoding
- Header redaction for logging
"""

from resilient_http.http.client import HttpClient
from resilient_http.http.config import ClientConfig, load_client_config
from resilient_http.http.constants import (
    DEFAULT_BROWSER_HEADERS,
    DEFAULT_RETRY_STATUSES,
    DEFAULT_STAGE,
)
from resilient_http.http.decompress import decompress
from resilient_http.http.errors import (
    ConfigError,
    DecompressionError,
    HttpClientError,
    TransportError,
    TransportErrorKind,
)
from resilient_http.http.forms import encode_form, encode_multipart, generate_boundary
from resilient_http.http.headers import HeaderMap, merge_headers
from resilient_http.http.models import (
    FilePart,
    RawResponse,
    Request,
    RequestConfig,
    Response,
    RetryPolicy,
)
from resilient_http.http.redact import redact_headers, redact_url_credentials
from resilient_http.http.session import HttpSession
from resilient_http.http.transport import HttpTransport, Transport, classify_exception


__all__ = [
    # Client
    "HttpClient",
    "HttpSession",
    # Transport
    "HttpTransport",
    "Transport",
    "classify_exception",
    # Config
    "ClientConfig",
    "load_client_config",
    # Models
    "FilePart",
    "RawResponse",
    "Request",
    "RequestConfig",
    "Response",
    "RetryPolicy",
    "HeaderMap",
    "merge_headers",
    # Errors
    "ConfigError",
    "DecompressionError",
    "HttpClientError",
    "TransportError",
    "TransportErrorKind",
    # Bodies
    "decompress",
    "encode_form",
    "encode_multipart",
    "generate_boundary",
    # Constants
    "DEFAULT_BROWSER_HEADERS",
    "DEFAULT_RETRY_STATUSES",
    "DEFAULT_STAGE",
    # Redaction
    "redact_headers",
    "redact_url_credentials",
]
