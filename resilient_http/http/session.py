"""Cookie and referer continuity for one client."""

import threading
from collections.abc import Mapping

import structlog

from resilient_http.http.headers import HeaderMap, HeaderValue


logger = structlog.get_logger()


class HttpSession:
    """Cookie jar, default header template and last successful URL.

    A session belongs to exactly one client. Every read and write goes
    through one lock, so responses completing concurrently never lose each
    other's cookie updates.
    """

    def __init__(
        self,
        headers: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
        fingerprint: str | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            headers: Default headers sent with every request.
            cookies: Initial cookies.
            fingerprint: Opaque identity placeholder, carried but unused.
        """
        self._lock = threading.Lock()
        self._default_headers = HeaderMap(headers)
        self._cookies: dict[str, str] = dict(cookies or {})
        self._last_url: str | None = None
        self.fingerprint = fingerprint

    @property
    def default_headers(self) -> HeaderMap:
        """Copy of the default header template."""
        with self._lock:
            return self._default_headers.copy()

    @property
    def cookies(self) -> dict[str, str]:
        """Snapshot of the cookie map."""
        with self._lock:
            return dict(self._cookies)

    @property
    def last_url(self) -> str | None:
        """URL of the last completed request, used as referer."""
        with self._lock:
            return self._last_url

    def set_last_url(self, url: str) -> None:
        """Record the URL of a completed request."""
        with self._lock:
            self._last_url = url

    def get_cookie_header(self) -> str:
        """Render cookies as a ``Cookie`` header value."""
        with self._lock:
            return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def update_from_response(self, headers: Mapping[str, HeaderValue]) -> None:
        """Upsert cookies from the response's ``Set-Cookie`` values.

        Only the ``name=value`` pair before the first ``;`` is kept. The pair
        is split on the first ``=``; entries without one are skipped.

        Args:
            headers: Response headers.
        """
        header_map = headers if isinstance(headers, HeaderMap) else HeaderMap(headers)
        raw_cookies = header_map.get_list("set-cookie")
        if not raw_cookies:
            return

        parsed: list[tuple[str, str]] = []
        for raw in raw_cookies:
            pair = raw.split(";", 1)[0]
            name, sep, value = pair.partition("=")
            name = name.strip()
            if not sep or not name:
                logger.debug("malformed_cookie_skipped", component="http_session")
                continue
            parsed.append((name, value.strip()))

        with self._lock:
            for name, value in parsed:
                self._cookies[name] = value
