"""Header redaction utilities for logging."""

import re
from collections.abc import Mapping

from resilient_http.http.headers import HeaderValue


# Headers that must never appear in logs
SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "x-api-key",
        "x-auth-token",
        "proxy-authorization",
        "set-cookie",
    }
)

REDACTED_VALUE = "[REDACTED]"

_URL_CREDENTIALS = re.compile(r"(https?://)([^:/@]+):([^@/]+)@")


def redact_headers(headers: Mapping[str, HeaderValue]) -> dict[str, HeaderValue]:
    """Redact sensitive headers for logging.

    Args:
        headers: Original headers.

    Returns:
        New dictionary with sensitive values replaced by [REDACTED].
    """
    result: dict[str, HeaderValue] = {}
    for key, value in headers.items():
        if is_sensitive_header(key):
            result[key] = REDACTED_VALUE
        else:
            result[key] = value
    return result


def is_sensitive_header(header_name: str) -> bool:
    """Check if a header name is sensitive."""
    return header_name.lower() in SENSITIVE_HEADERS


def redact_url_credentials(url: str) -> str:
    """Redact ``user:password@`` credentials from a URL."""
    return _URL_CREDENTIALS.sub(r"\1[REDACTED]:[REDACTED]@", url)
