"""HTTP constants for the client core.

Centralizes all HTTP-related constants to avoid duplication across modules.
"""

# Statuses retried by default (request timeout, rate limiting, transient 5xx)
DEFAULT_RETRY_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

# Retry defaults
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_REDIRECTS = 20
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_JITTER_FACTOR = 0.25

# Timeouts (seconds)
DEFAULT_CONNECT_TIMEOUT_SECONDS = 30.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60.0

# Telemetry defaults
DEFAULT_STAGE = "default"
COMPONENT_HTTP_CLIENT = "http_client"
COMPONENT_TRANSPORT = "http_transport"

# Content types
FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART_FORM_DATA = "multipart/form-data"

# Body framing headers dropped when a redirect turns the request into a GET
BODY_HEADERS = ("content-type", "content-length", "transfer-encoding")

# Static browser header template
DEFAULT_BROWSER_HEADERS: dict[str, str] = {
    "user-agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64)",
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
    "accept-encoding": "gzip, deflate, br",
    "upgrade-insecure-requests": "1",
}
