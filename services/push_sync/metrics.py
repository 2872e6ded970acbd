"""In-process call counters and timings served on /metrics."""

import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from shared.models import PushSyncReport


class SyncMetrics:
    """Counts calls, durations and push outcomes for the sync service."""

    def __init__(self):
        self.calls: Dict[str, int] = {}
        self.errors: Dict[str, int] = {}
        self.total_duration: Dict[str, float] = {}
        self.last_duration: Dict[str, float] = {}
        self.pushes_accepted = 0
        self.pushes_rejected = 0
        self.pushes_completed = 0
        self.pushes_failed = 0
        self.changesets_created = 0
        self.changeset_failures = 0
        self.change_failures = 0
        self.state_updates = 0
        self.last_push_completed: Optional[datetime] = None

    @contextmanager
    def timed(self, method: str):
        """Count one call of ``method`` and record how long it took."""
        start = time.perf_counter()
        try:
            yield
        except Exception:
            self.errors[method] = self.errors.get(method, 0) + 1
            raise
        finally:
            elapsed = time.perf_counter() - start
            self.calls[method] = self.calls.get(method, 0) + 1
            self.total_duration[method] = self.total_duration.get(method, 0.0) + elapsed
            self.last_duration[method] = elapsed

    def record_report(self, report: PushSyncReport) -> None:
        if report.succeeded:
            self.pushes_completed += 1
        else:
            self.pushes_failed += 1
        self.changesets_created += report.changesets_created
        self.changeset_failures += report.changeset_failures
        self.change_failures += report.change_failures
        self.state_updates += report.state_updates
        self.last_push_completed = report.finished_at or datetime.now(timezone.utc)

    def snapshot(self) -> Dict[str, Any]:
        methods = {}
        for method, count in self.calls.items():
            total = self.total_duration.get(method, 0.0)
            methods[method] = {
                "calls": count,
                "errors": self.errors.get(method, 0),
                "average_duration_ms": round(total / count * 1000, 3) if count else 0,
                "last_duration_ms": round(self.last_duration.get(method, 0.0) * 1000, 3),
            }
        return {
            "methods": methods,
            "pushes_accepted": self.pushes_accepted,
            "pushes_rejected": self.pushes_rejected,
            "pushes_completed": self.pushes_completed,
            "pushes_failed": self.pushes_failed,
            "changesets_created": self.changesets_created,
            "changeset_failures": self.changeset_failures,
            "change_failures": self.change_failures,
            "state_updates": self.state_updates,
            "last_push_completed": (
                self.last_push_completed.isoformat() if self.last_push_completed else None
            ),
        }
