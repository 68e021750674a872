"""Unit tests for session cookie and referer continuity."""

import threading

from resilient_http.http.headers import HeaderMap
from resilient_http.http.session import HttpSession


class TestCookieUpdates:
    """Tests for HttpSession.update_from_response."""

    def test_keeps_name_value_pair_only(self) -> None:
        """Test that cookie attributes are discarded."""
        session = HttpSession()
        session.update_from_response(
            HeaderMap({"set-cookie": "sid=abc; Path=/; HttpOnly"})
        )

        assert session.cookies == {"sid": "abc"}

    def test_malformed_entries_skipped(self) -> None:
        """Test that entries without '=' are ignored."""
        session = HttpSession()
        session.update_from_response(
            HeaderMap({"set-cookie": ["a=1", "malformed", "b=2; Path=/"]})
        )

        assert session.cookies == {"a": "1", "b": "2"}

    def test_empty_name_skipped(self) -> None:
        """Test that '=value' entries are ignored."""
        session = HttpSession()
        session.update_from_response(HeaderMap({"set-cookie": ["=orphan", "c=3"]}))

        assert session.cookies == {"c": "3"}

    def test_value_split_on_first_equals(self) -> None:
        """Test that values may contain '='."""
        session = HttpSession()
        session.update_from_response({"Set-Cookie": "token=a=b==; Secure"})

        assert session.cookies == {"token": "a=b=="}

    def test_upsert_overwrites(self) -> None:
        """Test that later values replace earlier ones."""
        session = HttpSession(cookies={"sid": "old", "lang": "pt"})
        session.update_from_response(HeaderMap({"set-cookie": "sid=new"}))

        assert session.cookies == {"sid": "new", "lang": "pt"}

    def test_no_set_cookie_is_noop(self) -> None:
        """Test that responses without cookies leave the jar untouched."""
        session = HttpSession(cookies={"sid": "1"})
        session.update_from_response(HeaderMap({"content-type": "text/html"}))

        assert session.cookies == {"sid": "1"}

    def test_concurrent_updates_not_lost(self) -> None:
        """Test that updates from many threads all land."""
        session = HttpSession()
        count = 50

        def update(index: int) -> None:
            session.update_from_response(HeaderMap({"set-cookie": f"c{index}={index}"}))

        threads = [threading.Thread(target=update, args=(i,)) for i in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(session.cookies) == count


class TestCookieHeader:
    """Tests for cookie header rendering."""

    def test_empty_jar(self) -> None:
        """Test that an empty jar renders an empty header."""
        assert HttpSession().get_cookie_header() == ""

    def test_join_in_insertion_order(self) -> None:
        """Test '; ' joined name=value pairs."""
        session = HttpSession(cookies={"a": "1", "b": "2"})

        assert session.get_cookie_header() == "a=1; b=2"


class TestSessionState:
    """Tests for defaults and last URL."""

    def test_default_headers_copy(self) -> None:
        """Test that callers cannot mutate the template."""
        session = HttpSession(headers={"User-Agent": "ua"})
        headers = session.default_headers
        headers["user-agent"] = "changed"

        assert session.default_headers["user-agent"] == "ua"

    def test_last_url(self) -> None:
        """Test last URL tracking."""
        session = HttpSession(fingerprint="fp-1")

        assert session.last_url is None
        session.set_last_url("https://a.test/page")
        assert session.last_url == "https://a.test/page"
        assert session.fingerprint == "fp-1"
