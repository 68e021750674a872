"""Unit tests for the in-memory metrics sink."""

import json
import subprocess
import sys
import threading
from pathlib import Path

import pytest

from resilient_http.observability.metrics import (
    HttpMetrics,
    MetricsSink,
    percentile,
    write_summary,
)


class TestPercentile:
    """Tests for nearest-rank percentiles."""

    def test_empty(self) -> None:
        """Test no samples gives None."""
        assert percentile([], 50) is None

    def test_single_sample(self) -> None:
        """Test one sample is every percentile."""
        assert percentile([7.0], 50) == 7.0
        assert percentile([7.0], 95) == 7.0

    def test_nearest_rank(self) -> None:
        """Test nearest-rank selection."""
        samples = [float(i) for i in range(1, 21)]

        assert percentile(samples, 50) == 10.0
        assert percentile(samples, 95) == 19.0
        assert percentile(samples, 100) == 20.0
        assert percentile(samples, 0) == 1.0


class TestHttpMetrics:
    """Tests for HttpMetrics recording."""

    def test_satisfies_sink_protocol(self) -> None:
        """Test HttpMetrics can be passed as a MetricsSink."""
        assert isinstance(HttpMetrics(), MetricsSink)

    def test_record_http(self) -> None:
        """Test success, failure and status breakdown."""
        metrics = HttpMetrics()

        metrics.record_http(200, 10.0)
        metrics.record_http(302, 12.0)
        metrics.record_http(404, 5.0)
        metrics.record_http(503, 50.0, attempt=4)

        stats = metrics.get_http_stats()
        assert stats["total_requests"] == 4
        assert stats["success"] == 2
        assert stats["fail"] == 2
        assert stats["status_code_breakdown"] == {"200": 1, "302": 1, "404": 1, "503": 1}

    def test_block_signals(self) -> None:
        """Test 403, 429 and interstitial counters."""
        metrics = HttpMetrics()

        metrics.record_http(403, 1.0)
        metrics.record_http(429, 1.0)
        metrics.record_http(429, 1.0)
        metrics.record_block_signal()

        assert metrics.get_http_stats()["block_signals"] == {
            "http_403": 1,
            "http_429": 2,
            "interstitial_html": 1,
        }

    def test_transport_failure(self) -> None:
        """Test failures without a response are counted by code."""
        metrics = HttpMetrics()

        metrics.record_transport_failure("timeout", 100.0, attempt=4)
        metrics.record_transport_failure("timeout", 90.0)

        stats = metrics.get_http_stats()
        assert stats["fail"] == 2
        assert stats["transport_errors"] == {"timeout": 2}
        assert metrics.get_latency_stats()["count"] == 2

    def test_retries_and_redirects(self) -> None:
        """Test retry and redirect counters."""
        metrics = HttpMetrics()

        metrics.record_retry()
        metrics.record_retry()
        metrics.record_redirect()

        stats = metrics.get_http_stats()
        assert stats["retries"] == 2
        assert stats["redirects"] == 1

    def test_latency_stats(self) -> None:
        """Test count/avg/max/p50/p95."""
        metrics = HttpMetrics()
        for value in (10.0, 20.0, 30.0, 40.0):
            metrics.observe_latency(value)

        stats = metrics.get_latency_stats()

        assert stats == {"count": 4, "avg": 25.0, "max": 40.0, "p50": 20.0, "p95": 40.0}

    def test_latency_stats_empty(self) -> None:
        """Test empty latency stats."""
        assert HttpMetrics().get_latency_stats() == {
            "count": 0,
            "avg": None,
            "max": None,
            "p50": None,
            "p95": None,
        }


class TestTaggedCounters:
    """Tests for tagged counters and child views."""

    def test_tags_distinguish_counters(self) -> None:
        """Test counters with different tags are separate."""
        metrics = HttpMetrics()

        metrics.inc("requests", {"stage": "a"})
        metrics.inc("requests", {"stage": "a"})
        metrics.inc("requests", {"stage": "b"}, value=5)

        assert metrics.get_counter("requests", {"stage": "a"}) == 2
        assert metrics.get_counter("requests", {"stage": "b"}) == 5
        assert metrics.get_counter("requests") == 0

    def test_tag_order_irrelevant(self) -> None:
        """Test tag order does not change the counter key."""
        metrics = HttpMetrics()

        metrics.inc("x", {"a": "1", "b": "2"})

        assert metrics.get_counter("x", {"b": "2", "a": "1"}) == 1

    def test_child_shares_storage(self) -> None:
        """Test child views add default tags over shared storage."""
        root = HttpMetrics()
        child = root.child({"source": "s1"})

        child.inc("items")
        child.record_http(200, 1.0)

        assert root.get_counter("items", {"source": "s1"}) == 1
        assert child.get_counter("items") == 1
        assert root.get_http_stats()["total_requests"] == 1

    def test_thread_safety(self) -> None:
        """Test concurrent increments are all counted."""
        metrics = HttpMetrics()

        def work() -> None:
            for _ in range(1000):
                metrics.inc("n")
                metrics.record_retry()

        threads = [threading.Thread(target=work) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert metrics.get_counter("n") == 8000
        assert metrics.get_http_stats()["retries"] == 8000


class TestSummary:
    """Tests for summary building and writing."""

    def test_to_summary(self) -> None:
        """Test summary structure."""
        metrics = HttpMetrics()
        metrics.record_http(200, 5.0)
        metrics.inc("pages", {"stage": "list"})

        summary = metrics.to_summary({"run_id": "r1"})

        assert summary["run_id"] == "r1"
        assert summary["http"]["total_requests"] == 1
        assert summary["latencies_ms"]["count"] == 1
        assert summary["counters"] == {'pages|[["stage","list"]]': 1}

    def test_write_summary(self, tmp_path: Path) -> None:
        """Test the summary is written as JSON."""
        metrics = HttpMetrics()
        metrics.record_http(200, 5.0)
        path = tmp_path / "out" / "summary.json"

        written = write_summary(path, metrics.to_summary())

        assert written == path
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["http"]["success"] == 1

    @pytest.mark.parametrize("status", [100, 199, 400, 599])
    def test_non_success_statuses(self, status: int) -> None:
        """Test statuses outside 2xx-3xx count as failures."""
        metrics = HttpMetrics()

        metrics.record_http(status, 1.0)

        assert metrics.get_http_stats()["fail"] == 1


class TestStatusConstants:
    """Tests for status constants shared with the client package."""

    def test_metrics_importable_before_client(self) -> None:
        """Test importing metrics first does not trip over the client package."""
        repo_root = Path(__file__).resolve().parents[3]
        code = (
            "import resilient_http.observability.metrics as m\n"
            "import resilient_http.http as h\n"
            "assert h.HttpClient is not None\n"
            "assert m.HTTP_STATUS_FORBIDDEN == 403\n"
        )

        result = subprocess.run(  # noqa: S603
            [sys.executable, "-c", code],
            cwd=repo_root,
            capture_output=True,
            text=True,
            check=False,
        )

        assert result.returncode == 0, result.stderr
