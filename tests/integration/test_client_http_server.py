"""Integration tests for HttpClient against a local HTTP server."""

import gzip
import threading
import zlib
from collections.abc import Generator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import brotli
import pytest

from resilient_http.http.client import HttpClient
from resilient_http.http.config import ClientConfig
from resilient_http.http.errors import TransportError, TransportErrorKind
from resilient_http.http.models import FilePart, RetryPolicy
from resilient_http.observability.metrics import HttpMetrics


class SiteHandler(BaseHTTPRequestHandler):
    """Handler emulating a small site with sessions and flaky endpoints."""

    # Class-level state shared across requests
    flaky_calls: int = 0
    seen: list[dict[str, str]] = []
    lock = threading.Lock()

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        """Suppress log messages during tests."""

    def _record(self, body: bytes = b"") -> None:
        with self.lock:
            self.seen.append(
                {
                    "method": self.command,
                    "path": self.path,
                    "cookie": self.headers.get("Cookie", ""),
                    "referer": self.headers.get("Referer", ""),
                    "content_type": self.headers.get("Content-Type", ""),
                    "body": body.decode("utf-8", errors="replace"),
                }
            )

    def _send(
        self,
        status: int,
        body: bytes,
        headers: list[tuple[str, str]] | None = None,
    ) -> None:
        self.send_response(status)
        for name, value in headers or []:
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:  # noqa: N802
        """Serve GET endpoints."""
        self._record()
        if self.path == "/login":
            self._send(
                200,
                b"welcome",
                [("Set-Cookie", "sid=abc; Path=/; HttpOnly"), ("Set-Cookie", "lang=pt")],
            )
        elif self.path == "/gzip":
            self._send(200, gzip.compress(b"gzip body"), [("Content-Encoding", "gzip")])
        elif self.path == "/deflate":
            self._send(200, zlib.compress(b"deflate body"), [("Content-Encoding", "deflate")])
        elif self.path == "/br":
            self._send(200, brotli.compress(b"brotli body"), [("Content-Encoding", "br")])
        elif self.path == "/flaky":
            with self.lock:
                SiteHandler.flaky_calls += 1
                calls = SiteHandler.flaky_calls
            if calls < 3:
                self._send(503, b"try later")
            else:
                self._send(200, b"recovered")
        elif self.path == "/redirect":
            self._send(302, b"", [("Location", "/landing")])
        elif self.path == "/sso":
            self._send(302, b"", [("Set-Cookie", "sid=xyz; Path=/"), ("Location", "/dashboard")])
        elif self.path == "/html":
            self._send(
                200,
                b"<html><body><a class='item' href='/1'>one</a><a class='item' href='/2'>two</a></body></html>",
                [("Content-Type", "text/html; charset=utf-8")],
            )
        else:
            self._send(200, b"page")

    def do_POST(self) -> None:  # noqa: N802
        """Echo POST bodies."""
        length = int(self.headers.get("Content-Length", "0"))
        body = self.rfile.read(length)
        self._record(body)
        self._send(200, body, [("Content-Type", "text/plain")])


@pytest.fixture
def site_url() -> Generator[str, None, None]:
    """Run the site on a random local port."""
    SiteHandler.flaky_calls = 0
    SiteHandler.seen = []
    server = ThreadingHTTPServer(("127.0.0.1", 0), SiteHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[0], server.server_address[1]
    yield f"http://{host}:{port}/"
    server.shutdown()
    server.server_close()


def fast_config(max_retries: int = 3) -> ClientConfig:
    """Config with millisecond backoff to keep tests quick."""
    return ClientConfig(
        request_timeout_seconds=5,
        retry_policy=RetryPolicy(max_retries=max_retries, base_delay_ms=1),
    )


class TestClientAgainstServer:
    """End-to-end tests over real sockets."""

    @pytest.mark.asyncio
    async def test_session_flow(self, site_url: str) -> None:
        """Test cookies and referer carry across requests."""
        async with HttpClient(site_url, fast_config()) as client:
            await client.get("login")
            await client.get("account")

        account = SiteHandler.seen[1]
        assert account["cookie"] == "sid=abc; lang=pt"
        assert account["referer"] == f"{site_url}login"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("path", "expected"),
        [("gzip", b"gzip body"), ("deflate", b"deflate body"), ("br", b"brotli body")],
    )
    async def test_decoding(self, site_url: str, path: str, expected: bytes) -> None:
        """Test every supported encoding is decoded."""
        async with HttpClient(site_url, fast_config()) as client:
            response = await client.get(path)

        assert response.body == expected

    @pytest.mark.asyncio
    async def test_retry_until_recovered(self, site_url: str) -> None:
        """Test 503 responses are retried until the server recovers."""
        metrics = HttpMetrics()
        async with HttpClient(site_url, fast_config(), metrics=metrics) as client:
            response = await client.get("flaky")

        assert response.status_code == 200
        assert response.text() == "recovered"
        assert SiteHandler.flaky_calls == 3
        assert metrics.get_http_stats()["retries"] == 2

    @pytest.mark.asyncio
    async def test_redirect_followed(self, site_url: str) -> None:
        """Test redirects are followed and counted."""
        metrics = HttpMetrics()
        async with HttpClient(site_url, fast_config(), metrics=metrics) as client:
            response = await client.get("redirect")

        assert response.url == f"{site_url}landing"
        assert metrics.get_http_stats()["redirects"] == 1

    @pytest.mark.asyncio
    async def test_redirect_carries_cookies(self, site_url: str) -> None:
        """Test seeded cookies and cookies set by the redirect reach the next hop."""
        config = fast_config().model_copy(update={"cookies": {"seed": "1"}})
        async with HttpClient(site_url, config) as client:
            response = await client.get("sso")

        assert response.url == f"{site_url}dashboard"
        assert [hop["path"] for hop in SiteHandler.seen] == ["/sso", "/dashboard"]
        assert SiteHandler.seen[0]["cookie"] == "seed=1"
        assert SiteHandler.seen[1]["cookie"] == "seed=1; sid=xyz"
        assert client.session.cookies == {"seed": "1", "sid": "xyz"}

    @pytest.mark.asyncio
    async def test_html_selector(self, site_url: str) -> None:
        """Test HTML helpers over a real response."""
        async with HttpClient(site_url, fast_config()) as client:
            response = await client.get("html")

        links = response.html("a.item")
        assert [link["href"] for link in links] == ["/1", "/2"]

    @pytest.mark.asyncio
    async def test_post_form_and_multipart(self, site_url: str) -> None:
        """Test form bodies reach the server intact."""
        async with HttpClient(site_url, fast_config()) as client:
            form = await client.post_form("submit", {"name": "Zé", "age": "30"})
            multipart = await client.post_multipart(
                "upload",
                {"title": "report", "file": FilePart(name="r.txt", data=b"data", type="text/plain")},
                boundary="XYZ",
            )

        assert form.text() == "name=Z%C3%A9&age=30"
        assert SiteHandler.seen[0]["content_type"] == "application/x-www-form-urlencoded"
        assert SiteHandler.seen[1]["content_type"] == "multipart/form-data; boundary=XYZ"
        assert multipart.body.endswith(b"--XYZ--\r\n")
        assert b'filename="r.txt"' in multipart.body

    @pytest.mark.asyncio
    async def test_connection_refused(self) -> None:
        """Test a closed port surfaces as connection-refused after retries."""
        server = ThreadingHTTPServer(("127.0.0.1", 0), SiteHandler)
        port = server.server_address[1]
        server.server_close()
        metrics = HttpMetrics()

        async with HttpClient(
            f"http://127.0.0.1:{port}/", fast_config(max_retries=1), metrics=metrics
        ) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.get("anything")

        assert exc_info.value.kind == TransportErrorKind.CONNECTION_REFUSED
        assert metrics.get_http_stats()["retries"] == 1
