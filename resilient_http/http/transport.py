"""Pooled HTTP transport bound to a single origin."""

import asyncio
import errno
import socket
from collections.abc import Iterator
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Protocol, runtime_checkable

import httpx
import structlog

from resilient_http.http.constants import (
    COMPONENT_TRANSPORT,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)
from resilient_http.http.errors import ConfigError, TransportError, TransportErrorKind
from resilient_http.http.headers import HeaderMap
from resilient_http.http.models import RawResponse, Request
from resilient_http.http.redact import redact_url_credentials
from resilient_http.http.url import origin_of


logger = structlog.get_logger()

_DNS_MESSAGES = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "no address associated",
    "name resolution failed",
)
_TRANSIENT_DNS_MESSAGES = ("temporary failure in name resolution",)
_REFUSED_MESSAGES = ("connection refused", "errno 111", "errno 61")
_RESET_MESSAGES = (
    "connection reset",
    "errno 104",
    "errno 54",
    "server disconnected",
    "broken pipe",
)


@runtime_checkable
class Transport(Protocol):
    """Protocol for raw request dispatch."""

    async def send(self, request: Request) -> RawResponse:
        """Send a request and return the undecoded response.

        Raises:
            TransportError: On network failure or timeout.
        """
        ...

    async def aclose(self) -> None:
        """Release pooled connections."""
        ...


def _iter_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_exception(exc: BaseException) -> TransportErrorKind:
    """Map an httpx or OS exception to a transport error kind.

    The exception chain is inspected first for typed OS errors, then the
    messages are matched against well-known resolver and socket texts.

    Args:
        exc: Exception raised while dispatching.

    Returns:
        Classified error kind.
    """
    if isinstance(exc, httpx.TimeoutException | TimeoutError):
        return TransportErrorKind.TIMEOUT

    chain = list(_iter_exception_chain(exc))
    for cause in chain:
        if isinstance(cause, socket.gaierror):
            if cause.errno == socket.EAI_AGAIN:
                return TransportErrorKind.TRANSIENT_RESOLUTION_FAILURE
            return TransportErrorKind.DNS_FAILURE
        if isinstance(cause, ConnectionRefusedError):
            return TransportErrorKind.CONNECTION_REFUSED
        if isinstance(cause, ConnectionResetError | BrokenPipeError | ConnectionAbortedError):
            return TransportErrorKind.CONNECTION_RESET
        if isinstance(cause, httpx.TimeoutException | TimeoutError):
            return TransportErrorKind.TIMEOUT
        if isinstance(cause, OSError) and cause.errno == errno.ECONNREFUSED:
            return TransportErrorKind.CONNECTION_REFUSED
        if isinstance(cause, OSError) and cause.errno == errno.ECONNRESET:
            return TransportErrorKind.CONNECTION_RESET

    message = " ".join(str(cause) for cause in chain).lower()
    if any(text in message for text in _TRANSIENT_DNS_MESSAGES):
        return TransportErrorKind.TRANSIENT_RESOLUTION_FAILURE
    if any(text in message for text in _DNS_MESSAGES):
        return TransportErrorKind.DNS_FAILURE
    if any(text in message for text in _REFUSED_MESSAGES):
        return TransportErrorKind.CONNECTION_REFUSED
    if any(text in message for text in _RESET_MESSAGES):
        return TransportErrorKind.CONNECTION_RESET

    if isinstance(exc, httpx.RemoteProtocolError | httpx.ReadError | httpx.WriteError):
        return TransportErrorKind.CONNECTION_RESET
    return TransportErrorKind.UNKNOWN


class HttpTransport:
    """Dispatches requests over one pooled ``httpx.AsyncClient``.

    Concurrent ``send`` calls share the pool and are not serialized. Bodies
    are read undecoded; httpx cookie persistence is disabled because the
    session owns cookies.
    """

    def __init__(
        self,
        origin: str,
        connect_timeout_seconds: float | None = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        request_timeout_seconds: float | None = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            origin: Scheme + host + port served by this transport.
            connect_timeout_seconds: Limit for establishing a connection.
            request_timeout_seconds: Limit for one whole request/response
                exchange. None disables it.
            transport: Optional httpx transport (for testing), e.g.
                ``httpx.MockTransport``.
        """
        self._origin = origin_of(origin)
        self._request_timeout = request_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=self._origin,
            timeout=httpx.Timeout(request_timeout_seconds, connect=connect_timeout_seconds),
            cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
            transport=transport,
        )
        self._log = logger.bind(component=COMPONENT_TRANSPORT, origin=self._origin)

    @property
    def origin(self) -> str:
        """Origin served by this transport."""
        return self._origin

    async def send(self, request: Request) -> RawResponse:
        """Send a request and return the undecoded response.

        Redirects are never followed here; a 3xx comes back as-is so the
        client can update its session before the next hop.

        Args:
            request: Request whose URL belongs to this transport's origin.

        Returns:
            RawResponse with wire bytes and multi-valued headers.

        Raises:
            ConfigError: If the request targets another origin.
            TransportError: On network failure, timeout or any other httpx
                failure while exchanging the request.
        """
        if request.origin != self._origin:
            msg = f"Request origin {request.origin} does not match transport origin {self._origin}"
            raise ConfigError(msg)

        url = redact_url_credentials(request.url)
        try:
            return await asyncio.wait_for(self._dispatch(request), timeout=self._request_timeout)
        except TimeoutError as e:
            timeout_ms = int((self._request_timeout or 0) * 1000)
            raise TransportError(
                TransportErrorKind.TIMEOUT,
                f"Request timeout after {timeout_ms}ms",
                url=url,
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError, OSError) as e:
            kind = classify_exception(e)
            self._log.debug("transport_error", url=url, error_code=kind.value, error_type=type(e).__name__)
            raise TransportError(kind, str(e) or type(e).__name__, url=url) from e

    async def _dispatch(self, request: Request) -> RawResponse:
        async with self._client.stream(
            request.method,
            request.url,
            headers=list(request.headers.to_dict().items()),
            content=request.body_bytes,
            follow_redirects=False,
        ) as response:
            body = bytearray()
            if response.is_stream_consumed:
                # Built from in-memory content: httpx already read it, but the
                # underlying stream still yields the undecoded bytes.
                async for chunk in response.stream:  # type: ignore[union-attr]
                    body.extend(chunk)
            else:
                async for chunk in response.aiter_raw():
                    body.extend(chunk)

            headers = HeaderMap()
            for key, value in response.headers.multi_items():
                headers.add(key, value)

            return RawResponse(
                status_code=response.status_code,
                headers=headers,
                body=bytes(body),
                url=str(response.url),
            )

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()
