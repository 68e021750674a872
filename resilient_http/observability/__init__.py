"""Observability module for logging, run context and metrics."""

from resilient_http.observability.context import RunContext
from resilient_http.observability.logging import (
    bind_run_context,
    clear_run_context,
    configure_logging,
)
from resilient_http.observability.metrics import (
    HttpMetrics,
    MetricsCore,
    MetricsSink,
    percentile,
    write_summary,
)


__all__ = [
    "HttpMetrics",
    "MetricsCore",
    "MetricsSink",
    "RunContext",
    "bind_run_context",
    "clear_run_context",
    "configure_logging",
    "percentile",
    "write_summary",
]
