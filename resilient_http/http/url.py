"""URL resolution and origin helpers for the client core."""

from urllib.parse import urljoin, urlsplit

from resilient_http.http.errors import ConfigError


ALLOWED_SCHEMES = frozenset({"http", "https"})
DEFAULT_PORTS = {"http": 80, "https": 443}


def validate_base_url(base_url: str) -> str:
    """Validate a client base URL.

    Args:
        base_url: Absolute http(s) URL.

    Returns:
        The base URL, unchanged.

    Raises:
        ConfigError: If the URL is empty, relative or not http(s).
    """
    if not base_url or not base_url.strip():
        msg = "base_url is required"
        raise ConfigError(msg)
    parts = urlsplit(base_url.strip())
    if parts.scheme.lower() not in ALLOWED_SCHEMES or not parts.hostname:
        msg = f"Invalid base_url: {base_url!r}. Must be an absolute http(s) URL"
        raise ConfigError(msg)
    return base_url.strip()


def resolve_url(base_url: str, url: str) -> str:
    """Resolve a possibly relative URL against the base URL.

    Absolute http(s) URLs are returned as-is.

    Raises:
        ConfigError: If the URL is empty or resolves to a non-http(s) URL.
    """
    if not url or not str(url).strip():
        msg = "Request url is required"
        raise ConfigError(msg)
    resolved = urljoin(base_url, str(url).strip())
    parts = urlsplit(resolved)
    if parts.scheme.lower() not in ALLOWED_SCHEMES or not parts.hostname:
        msg = f"Cannot resolve {url!r} to an absolute http(s) URL"
        raise ConfigError(msg)
    return resolved


def origin_of(url: str) -> str:
    """Return the scheme + host + port origin of a URL.

    Default ports are omitted so ``https://a.test:443`` and
    ``https://a.test`` share one origin.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    try:
        port = parts.port
    except ValueError as e:
        msg = f"Invalid port in URL: {url!r}"
        raise ConfigError(msg) from e
    if port is None or port == DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"
