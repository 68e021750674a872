"""HTTP status code constants shared by the client core and metrics.

Kept outside ``resilient_http.http`` so that ``observability`` can import
them without initializing the client package.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_REDIRECT_MIN = 300
HTTP_STATUS_REDIRECT_MAX = 400
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_TOO_MANY_REQUESTS = 429

# Redirect statuses followed by the client
HTTP_STATUS_MOVED_PERMANENTLY = 301
HTTP_STATUS_FOUND = 302
HTTP_STATUS_SEE_OTHER = 303
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
