"""Resilient HTTP client with session continuity, retries and telemetry."""

import asyncio
import random
import threading
from collections.abc import Awaitable, Callable, Mapping
from types import TracebackType

import httpx
import structlog

from resilient_http.http.config import ClientConfig
from resilient_http.http.constants import BODY_HEADERS, COMPONENT_HTTP_CLIENT, DEFAULT_STAGE
from resilient_http.http.decompress import decompress
from resilient_http.http.errors import (
    DecompressionError,
    HttpClientError,
    TransportError,
    TransportErrorKind,
)
from resilient_http.http.forms import (
    FormData,
    MultipartField,
    encode_form,
    encode_multipart,
)
from resilient_http.http.headers import HeaderMap, merge_headers
from resilient_http.http.models import (
    RawResponse,
    Request,
    RequestConfig,
    Response,
    RetryContext,
)
from resilient_http.http.redact import redact_headers, redact_url_credentials
from resilient_http.http.session import HttpSession
from resilient_http.http.state_machine import CallState, CallStateMachine
from resilient_http.http.transport import HttpTransport, Transport
from resilient_http.http.url import origin_of, resolve_url, validate_base_url
from resilient_http.observability.context import RunContext
from resilient_http.observability.metrics import HttpMetrics, MetricsSink
from resilient_http.status import (
    HTTP_STATUS_FOUND,
    HTTP_STATUS_MOVED_PERMANENTLY,
    HTTP_STATUS_REDIRECT_MAX,
    HTTP_STATUS_REDIRECT_MIN,
    HTTP_STATUS_SEE_OTHER,
    REDIRECT_STATUSES,
)


SleepFunc = Callable[[float], Awaitable[None]]
Headers = Mapping[str, str | None]


class HttpClient:
    """HTTP client with retries, cookie continuity and structured telemetry.

    Provides async HTTP operations with:
    - Per-origin pooled transports, created on first use
    - Exponential backoff with jitter for transport errors and retryable statuses
    - Cookie jar and referer chaining through an owned session
    - Content-Encoding aware body decoding
    - Structured log events and metrics per logical call

    The client imposes no concurrency limit; callers pace requests.
    """

    def __init__(
        self,
        base_url: str,
        config: ClientConfig | None = None,
        *,
        logger: structlog.typing.FilteringBoundLogger | None = None,
        metrics: MetricsSink | None = None,
        context: RunContext | None = None,
        transport: Transport | None = None,
        httpx_transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Absolute URL relative request URLs resolve against.
            config: Client configuration.
            logger: Structured logger; the module logger is used when omitted.
            metrics: Metrics sink; a private ``HttpMetrics`` when omitted.
            context: Run context minting request identifiers.
            transport: Transport used for every origin (for testing).
            httpx_transport: httpx transport handed to each per-origin
                ``HttpTransport`` (e.g. ``httpx.MockTransport``).
            sleep: Awaitable used for backoff delays.
            rng: Random source for backoff jitter.

        Raises:
            ConfigError: If ``base_url`` is not an absolute http(s) URL.
        """
        self._base_url = validate_base_url(base_url)
        self._config = config or ClientConfig()
        self._session = HttpSession(
            headers=self._config.default_headers,
            cookies=self._config.cookies,
            fingerprint=self._config.fingerprint,
        )
        self._metrics: MetricsSink = metrics if metrics is not None else HttpMetrics()
        self._context = context or RunContext()
        self._shared_transport = transport
        self._httpx_transport = httpx_transport
        self._transports: dict[str, HttpTransport] = {}
        self._transports_lock = threading.Lock()
        self._sleep = sleep
        self._rng = rng
        self._log = (logger or structlog.get_logger()).bind(
            component=COMPONENT_HTTP_CLIENT,
            run_id=self._context.run_id,
        )

    @property
    def base_url(self) -> str:
        """Base URL for relative request URLs."""
        return self._base_url

    @property
    def config(self) -> ClientConfig:
        """Client configuration."""
        return self._config

    @property
    def session(self) -> HttpSession:
        """Session owned by this client."""
        return self._session

    @property
    def metrics(self) -> MetricsSink:
        """Metrics sink receiving request telemetry."""
        return self._metrics

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close every transport created by this client."""
        with self._transports_lock:
            transports = list(self._transports.values())
            self._transports.clear()
        for transport in transports:
            await transport.aclose()

    async def get(
        self,
        url: str,
        headers: Headers | None = None,
        *,
        stage: str = DEFAULT_STAGE,
        max_retries: int | None = None,
        follow_redirects: bool | None = None,
    ) -> Response:
        """Send a GET request."""
        return await self.send_request(
            RequestConfig(
                method="GET",
                url=url,
                headers=dict(headers or {}),
                stage=stage,
                max_retries=max_retries,
                follow_redirects=follow_redirects,
            )
        )

    async def post(
        self,
        url: str,
        body: bytes | str | None = None,
        headers: Headers | None = None,
        *,
        stage: str = DEFAULT_STAGE,
        max_retries: int | None = None,
        retry_on_error: bool | None = None,
    ) -> Response:
        """Send a POST request with a raw body."""
        return await self.send_request(
            RequestConfig(
                method="POST",
                url=url,
                headers=dict(headers or {}),
                body=body,
                stage=stage,
                max_retries=max_retries,
                retry_on_error=retry_on_error,
            )
        )

    async def post_form(
        self,
        url: str,
        data: FormData,
        headers: Headers | None = None,
        *,
        stage: str = DEFAULT_STAGE,
        max_retries: int | None = None,
        retry_on_error: bool | None = None,
    ) -> Response:
        """POST URL-encoded form data.

        Args:
            url: Target URL, absolute or relative to the base URL.
            data: Pre-encoded string or mapping of fields.
            headers: Per-call headers; may override the content type.
            stage: Telemetry label.
            max_retries: Per-call retry limit.
            retry_on_error: Per-call override for retrying transport errors.

        Returns:
            Decoded response.
        """
        encoded = encode_form(data)
        return await self.post(
            url,
            encoded.body,
            {"content-type": encoded.content_type, **dict(headers or {})},
            stage=stage,
            max_retries=max_retries,
            retry_on_error=retry_on_error,
        )

    async def post_multipart(
        self,
        url: str,
        fields: Mapping[str, MultipartField],
        headers: Headers | None = None,
        *,
        stage: str = DEFAULT_STAGE,
        max_retries: int | None = None,
        retry_on_error: bool | None = None,
        boundary: str | None = None,
    ) -> Response:
        """POST a ``multipart/form-data`` body with a fresh random boundary.

        Args:
            url: Target URL, absolute or relative to the base URL.
            fields: Plain string fields and file fields (``FilePart`` or a
                mapping with ``name``, ``data`` and ``type``).
            headers: Per-call headers.
            stage: Telemetry label.
            max_retries: Per-call retry limit.
            retry_on_error: Per-call override for retrying transport errors.
            boundary: Fixed boundary, mainly for tests.

        Returns:
            Decoded response.
        """
        encoded = encode_multipart(fields, boundary=boundary)
        return await self.post(
            url,
            encoded.body,
            {**encoded.headers, **dict(headers or {})},
            stage=stage,
            max_retries=max_retries,
            retry_on_error=retry_on_error,
        )

    async def send_request(self, config: RequestConfig) -> Response:
        """Send a request, retrying transient failures.

        Transport errors of a retryable kind and responses with a retryable
        status are retried up to ``max_retries`` times with identical method,
        URL, headers and body. A retryable status that exhausts its retries
        is returned as a normal response.

        Redirects are followed hop by hop within one attempt. Cookies set by
        a redirect response are stored before the next hop is sent.

        Args:
            config: Per-call request configuration.

        Returns:
            Decoded response.

        Raises:
            ConfigError: If the URL or a redirect location cannot be resolved.
            TransportError: When a transport error is not retried, retries
                are exhausted or the redirect limit is exceeded.
            DecompressionError: If the body is corrupt for its encoding.
        """
        policy = self._config.retry_policy
        max_retries = policy.max_retries if config.max_retries is None else config.max_retries
        follow_redirects = (
            self._config.follow_redirects
            if config.follow_redirects is None
            else config.follow_redirects
        )

        request = Request(
            method=config.method,
            url=resolve_url(self._base_url, config.url),
            headers=self._build_headers(config.headers),
            body=config.body,
        )

        machine = CallStateMachine(max_attempts=max_retries + 1)
        ctx = RetryContext(request_id=self._context.next_request_id(), stage=config.stage)
        log = self._log.bind(
            stage=config.stage,
            method=request.method,
            url=redact_url_credentials(request.url),
        )

        while True:
            log.debug(
                "http_request_attempt",
                request_id=ctx.request_id,
                attempt=ctx.attempt,
                headers=redact_headers(request.headers),
            )
            try:
                raw = await self._exchange(request, follow_redirects, ctx, log)
            except TransportError as e:
                retryable = policy.is_retryable_error(
                    e.kind, request.method, config.retry_on_error
                )
                if retryable and policy.can_retry(ctx.attempt, max_retries):
                    await self._backoff(
                        machine,
                        ctx,
                        log,
                        error_code=e.code,
                        error_message=e.message,
                    )
                    continue
                machine.transition(CallState.FAILURE)
                self._record_failure(ctx, log, e.code, e.message)
                raise
            except HttpClientError as e:
                machine.transition(CallState.FAILURE)
                self._record_failure(ctx, log, e.code, str(e))
                raise

            if policy.is_retryable_status(raw.status_code) and policy.can_retry(
                ctx.attempt, max_retries
            ):
                await self._backoff(machine, ctx, log, status_code=raw.status_code)
                continue

            machine.transition(CallState.SUCCESS)
            return self._complete(request, raw, ctx, log)

    def _build_headers(self, per_call: Headers) -> HeaderMap:
        """Layer session defaults, per-call headers, referer and cookies."""
        referer = self._session.last_url
        cookie = self._session.get_cookie_header()
        return merge_headers(
            self._session.default_headers,
            per_call,
            {"referer": referer} if referer else None,
            {"cookie": cookie} if cookie else None,
        )

    def _get_transport(self, origin: str) -> Transport:
        if self._shared_transport is not None:
            return self._shared_transport
        with self._transports_lock:
            transport = self._transports.get(origin)
            if transport is None:
                transport = HttpTransport(
                    origin,
                    connect_timeout_seconds=self._config.connect_timeout_seconds,
                    request_timeout_seconds=self._config.request_timeout_seconds,
                    transport=self._httpx_transport,
                )
                self._transports[origin] = transport
            return transport

    async def _exchange(
        self,
        request: Request,
        follow_redirects: bool,
        ctx: RetryContext,
        log: structlog.typing.FilteringBoundLogger,
    ) -> RawResponse:
        """Send one attempt, following redirects when enabled.

        Returns:
            The terminal response, stamped with the final URL and the number
            of hops taken.
        """
        current = request
        redirects = 0
        while True:
            raw = await self._get_transport(current.origin).send(current)
            location = raw.headers.get_first("location")
            if not (follow_redirects and raw.status_code in REDIRECT_STATUSES and location):
                return raw.model_copy(
                    update={"url": raw.url or current.url, "redirect_count": redirects}
                )

            if redirects >= self._config.max_redirects:
                msg = f"Exceeded maximum of {self._config.max_redirects} redirects"
                raise TransportError(
                    TransportErrorKind.UNKNOWN,
                    msg,
                    url=redact_url_credentials(current.url),
                )

            self._session.update_from_response(raw.headers)
            current = self._redirect_request(current, raw.status_code, location)
            redirects += 1
            log.debug(
                "http_redirect",
                request_id=ctx.request_id,
                status_code=raw.status_code,
                location=redact_url_credentials(current.url),
                redirects=redirects,
            )

    def _redirect_request(self, previous: Request, status_code: int, location: str) -> Request:
        """Build the next hop of a redirect chain.

        303 switches to GET (except HEAD), as do 301 and 302 for POST; the
        body and its framing headers are dropped when that happens.
        Authorization does not cross origins. The cookie header is rebuilt
        from the session so cookies set by the redirect are sent.
        """
        url = resolve_url(previous.url, location)
        method = previous.method
        body = previous.body
        if (status_code == HTTP_STATUS_SEE_OTHER and method != "HEAD") or (
            status_code in (HTTP_STATUS_MOVED_PERMANENTLY, HTTP_STATUS_FOUND)
            and method == "POST"
        ):
            method = "GET"
            body = None

        cookie = self._session.get_cookie_header()
        headers = merge_headers(
            previous.headers,
            dict.fromkeys(BODY_HEADERS) if body is None else None,
            {"authorization": None} if origin_of(url) != previous.origin else None,
            {"cookie": cookie} if cookie else None,
        )
        return Request(method=method, url=url, headers=headers, body=body)

    async def _backoff(
        self,
        machine: CallStateMachine,
        ctx: RetryContext,
        log: structlog.typing.FilteringBoundLogger,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        """Sleep before the next attempt and advance the retry context."""
        delay_ms = self._config.retry_policy.get_delay_ms(ctx.attempt, self._rng)
        machine.transition(CallState.RETRY)
        self._metrics.record_retry()
        self._metrics.inc("http_retries_total", {"stage": ctx.stage})
        log.warning(
            "http_retry_scheduled",
            request_id=ctx.request_id,
            attempt=ctx.attempt,
            elapsed_ms=round(ctx.elapsed_ms, 2),
            delay_ms=round(delay_ms, 2),
            status_code=status_code,
            error_code=error_code,
            error_message=error_message,
        )

        await self._sleep(delay_ms / 1000.0)

        machine.transition(CallState.ATTEMPT)
        ctx.attempt = machine.attempt
        ctx.request_id = self._context.next_request_id()

    def _complete(
        self,
        request: Request,
        raw: RawResponse,
        ctx: RetryContext,
        log: structlog.typing.FilteringBoundLogger,
    ) -> Response:
        """Update the session, decode the body and emit telemetry."""
        self._session.update_from_response(raw.headers)
        self._session.set_last_url(request.url)

        encoding = raw.headers.get_first("content-encoding")
        try:
            body = decompress(raw.body, encoding)
        except DecompressionError as e:
            self._metrics.inc("http_decompression_errors_total", {"stage": ctx.stage})
            log.error(
                "http_decompression_failed",
                request_id=ctx.request_id,
                attempt=ctx.attempt,
                elapsed_ms=round(ctx.elapsed_ms, 2),
                status_code=raw.status_code,
                error_code=e.code,
                error_message=str(e),
            )
            raise

        response = Response(
            status_code=raw.status_code,
            headers=raw.headers,
            body=body,
            url=raw.url or request.url,
        )

        elapsed_ms = ctx.elapsed_ms
        if raw.redirect_count or (
            HTTP_STATUS_REDIRECT_MIN <= raw.status_code < HTTP_STATUS_REDIRECT_MAX
        ):
            self._metrics.record_redirect()
        self._metrics.record_http(raw.status_code, elapsed_ms, ctx.attempt)
        self._metrics.inc(
            "http_requests_total",
            {"stage": ctx.stage, "status": str(raw.status_code)},
        )
        log.info(
            "http_request_complete",
            request_id=ctx.request_id,
            attempt=ctx.attempt,
            elapsed_ms=round(elapsed_ms, 2),
            status_code=raw.status_code,
            content_type=response.content_type or None,
            content_length=len(body),
            redirects=raw.redirect_count,
        )
        return response

    def _record_failure(
        self,
        ctx: RetryContext,
        log: structlog.typing.FilteringBoundLogger,
        error_code: str,
        error_message: str,
    ) -> None:
        elapsed_ms = ctx.elapsed_ms
        self._metrics.record_transport_failure(error_code, elapsed_ms, ctx.attempt)
        self._metrics.inc("http_failures_total", {"stage": ctx.stage, "error_code": error_code})
        log.error(
            "http_request_failed",
            request_id=ctx.request_id,
            attempt=ctx.attempt,
            elapsed_ms=round(elapsed_ms, 2),
            error_code=error_code,
            error_message=error_message,
        )
