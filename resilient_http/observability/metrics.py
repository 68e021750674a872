"""In-memory metrics sink for HTTP telemetry.

This module provides counters, a status-code histogram, block-signal
counters and a latency distribution, plus a JSON summary writer.
"""

import json
import math
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, TypedDict, runtime_checkable

from resilient_http.status import (
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_REDIRECT_MAX,
    HTTP_STATUS_TOO_MANY_REQUESTS,
)


class LatencyStats(TypedDict):
    """Latency distribution in milliseconds."""

    count: int
    avg: float | None
    max: float | None
    p50: float | None
    p95: float | None


class BlockSignals(TypedDict):
    """Responses suggesting the client is being blocked."""

    http_403: int
    http_429: int
    interstitial_html: int


class HttpStats(TypedDict):
    """Aggregate request outcome counters."""

    total_requests: int
    success: int
    fail: int
    retries: int
    redirects: int
    status_code_breakdown: dict[str, int]
    transport_errors: dict[str, int]
    block_signals: BlockSignals


@runtime_checkable
class MetricsSink(Protocol):
    """Protocol for the metrics collaborator consumed by the client."""

    def record_http(self, status_code: int, elapsed_ms: float, attempt: int = 1) -> None:
        """Record a completed request."""
        ...

    def record_retry(self) -> None:
        """Record a scheduled retry."""
        ...

    def record_redirect(self) -> None:
        """Record a redirected request."""
        ...

    def record_transport_failure(self, error_code: str, elapsed_ms: float, attempt: int = 1) -> None:
        """Record a request that failed without a response."""
        ...

    def inc(self, name: str, tags: Mapping[str, str] | None = None, value: int = 1) -> None:
        """Increment a tagged counter."""
        ...


def percentile(sorted_samples: list[float], p: float) -> float | None:
    """Nearest-rank percentile of pre-sorted samples.

    Args:
        sorted_samples: Samples in ascending order.
        p: Percentile in [0, 100].

    Returns:
        The percentile value, or None for no samples.
    """
    if not sorted_samples:
        return None
    idx = math.ceil((p / 100) * len(sorted_samples)) - 1
    return sorted_samples[max(0, min(idx, len(sorted_samples) - 1))]


def _counter_key(name: str, tags: Mapping[str, str]) -> str:
    if not tags:
        return name
    entries = sorted((str(k), str(v)) for k, v in tags.items())
    return f"{name}|{json.dumps(entries, separators=(',', ':'))}"


@dataclass
class MetricsCore:
    """Thread-safe storage shared by an ``HttpMetrics`` tree."""

    counters: dict[str, int] = field(default_factory=dict)
    latencies_ms: list[float] = field(default_factory=list)
    total_requests: int = 0
    success: int = 0
    fail: int = 0
    retries: int = 0
    redirects: int = 0
    status_code_breakdown: dict[str, int] = field(default_factory=dict)
    transport_errors: dict[str, int] = field(default_factory=dict)
    block_signals: dict[str, int] = field(
        default_factory=lambda: {"http_403": 0, "http_429": 0, "interstitial_html": 0}
    )
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class HttpMetrics:
    """Metrics collector for HTTP client operations.

    Provides thread-safe metrics for:
    - http totals (requests, success, fail, retries, redirects)
    - status code breakdown and transport error kinds
    - block signals (403, 429, interstitial pages)
    - latency distribution (count/avg/max/p50/p95)
    - free-form tagged counters

    ``child`` returns a view with extra default tags over the same storage.
    """

    def __init__(
        self,
        core: MetricsCore | None = None,
        default_tags: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the collector.

        Args:
            core: Shared storage; a new one is created when omitted.
            default_tags: Tags merged into every counter increment.
        """
        self._core = core or MetricsCore()
        self._default_tags = dict(default_tags or {})

    def child(self, tags: Mapping[str, str]) -> "HttpMetrics":
        """Return a view sharing storage with additional default tags."""
        return HttpMetrics(self._core, {**self._default_tags, **tags})

    def inc(self, name: str, tags: Mapping[str, str] | None = None, value: int = 1) -> None:
        """Increment a tagged counter.

        Args:
            name: Counter name.
            tags: Extra tags for this increment.
            value: Increment amount.
        """
        key = _counter_key(name, {**self._default_tags, **(tags or {})})
        with self._core.lock:
            self._core.counters[key] = self._core.counters.get(key, 0) + value

    def observe_latency(self, elapsed_ms: float) -> None:
        """Record a latency sample."""
        with self._core.lock:
            self._core.latencies_ms.append(elapsed_ms)

    def record_http(self, status_code: int, elapsed_ms: float, attempt: int = 1) -> None:
        """Record a completed request.

        Args:
            status_code: Final HTTP status code.
            elapsed_ms: Duration of the logical call including retries.
            attempt: Attempts used (kept for sink compatibility).
        """
        core = self._core
        with core.lock:
            core.total_requests += 1
            core.latencies_ms.append(elapsed_ms)
            if HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_REDIRECT_MAX:
                core.success += 1
            else:
                core.fail += 1
            if status_code == HTTP_STATUS_FORBIDDEN:
                core.block_signals["http_403"] += 1
            elif status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
                core.block_signals["http_429"] += 1
            key = str(status_code)
            core.status_code_breakdown[key] = core.status_code_breakdown.get(key, 0) + 1

    def record_transport_failure(self, error_code: str, elapsed_ms: float, attempt: int = 1) -> None:
        """Record a request that failed without a response."""
        core = self._core
        with core.lock:
            core.total_requests += 1
            core.fail += 1
            core.latencies_ms.append(elapsed_ms)
            core.transport_errors[error_code] = core.transport_errors.get(error_code, 0) + 1

    def record_retry(self) -> None:
        """Record a scheduled retry."""
        with self._core.lock:
            self._core.retries += 1

    def record_redirect(self) -> None:
        """Record a redirected request."""
        with self._core.lock:
            self._core.redirects += 1

    def record_block_signal(self, signal: str = "interstitial_html") -> None:
        """Record a caller-detected block signal (e.g. an interstitial page)."""
        with self._core.lock:
            self._core.block_signals[signal] = self._core.block_signals.get(signal, 0) + 1

    def get_latency_stats(self) -> LatencyStats:
        """Get latency statistics."""
        with self._core.lock:
            samples = sorted(self._core.latencies_ms)
        return self._latency_stats(samples)

    @staticmethod
    def _latency_stats(samples: list[float]) -> LatencyStats:
        count = len(samples)
        return LatencyStats(
            count=count,
            avg=round(sum(samples) / count, 2) if count else None,
            max=samples[-1] if count else None,
            p50=percentile(samples, 50),
            p95=percentile(samples, 95),
        )

    def get_http_stats(self) -> HttpStats:
        """Get a copy of the aggregate request counters."""
        core = self._core
        with core.lock:
            return HttpStats(
                total_requests=core.total_requests,
                success=core.success,
                fail=core.fail,
                retries=core.retries,
                redirects=core.redirects,
                status_code_breakdown=dict(core.status_code_breakdown),
                transport_errors=dict(core.transport_errors),
                block_signals=BlockSignals(
                    http_403=core.block_signals.get("http_403", 0),
                    http_429=core.block_signals.get("http_429", 0),
                    interstitial_html=core.block_signals.get("interstitial_html", 0),
                ),
            )

    def get_counter(self, name: str, tags: Mapping[str, str] | None = None) -> int:
        """Get the value of a tagged counter (default tags included)."""
        key = _counter_key(name, {**self._default_tags, **(tags or {})})
        with self._core.lock:
            return self._core.counters.get(key, 0)

    def to_summary(self, extra: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Build a run summary.

        Args:
            extra: Additional top-level entries (run config, results).

        Returns:
            Dictionary with counters, http stats and latency distribution.
        """
        with self._core.lock:
            counters = dict(self._core.counters)
            samples = sorted(self._core.latencies_ms)
        return {
            **dict(extra or {}),
            "counters": counters,
            "http": self.get_http_stats(),
            "latencies_ms": self._latency_stats(samples),
        }


def write_summary(path: Path, summary: Mapping[str, Any]) -> Path:
    """Write a summary as pretty-printed JSON, creating parent directories.

    Args:
        path: Destination file.
        summary: JSON-serializable summary.

    Returns:
        The written path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary, indent=2, sort_keys=True, default=str), encoding="utf-8")
    return path
