"""Run context shared by one client and its telemetry."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True)
class RunContext:
    """Identifies a run and mints per-request identifiers.

    Attributes:
        run_id: Unique run identifier bound into every log event.
        started_at: Run start time (UTC).
    """

    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def next_request_id(self) -> str:
        """Return a fresh request identifier."""
        return str(uuid.uuid4())
