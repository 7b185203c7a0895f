"""Per-process test result aggregation.

Each worker process owns one collector. Under pytest-xdist the workers ship
``to_dict()`` back to the controller, which combines them with ``merge()``.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any

FAILED_STATUSES = frozenset({"failed", "timedOut", "interrupted", "error"})


@dataclass
class WorkerStats:
    """Counters for one worker."""

    passed: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    duration: float = 0.0


class ResultCollector:
    """Collect test outcomes per worker id."""

    def __init__(self) -> None:
        self._workers: dict[str, WorkerStats] = {}
        self._start_time = time.time()

    def add(self, worker_id: str, status: str | None, duration: float = 0.0) -> None:
        """Record one test outcome.

        Args:
            worker_id: Worker capability id (e.g. "0-0")
            status: Final status ("passed", "failed", "skipped", ...)
            duration: Test duration in seconds
        """
        stats = self._workers.setdefault(worker_id, WorkerStats())
        stats.total += 1
        stats.duration += duration or 0.0

        if status == "skipped":
            stats.skipped += 1
        elif status == "passed":
            stats.passed += 1
        elif status in FAILED_STATUSES:
            stats.failed += 1

    def worker_stats(self, worker_id: str) -> WorkerStats | None:
        return self._workers.get(worker_id)

    def worker_exit_code(self, worker_id: str) -> int:
        stats = self._workers.get(worker_id)
        return 1 if stats and stats.failed > 0 else 0

    def exit_code(self) -> int:
        return 1 if any(stats.failed > 0 for stats in self._workers.values()) else 0

    def framework_results(self) -> dict[str, int]:
        """Totals in the ``{finished, passed, failed}`` form services expect."""
        return {
            "finished": sum(s.total for s in self._workers.values()),
            "passed": sum(s.passed for s in self._workers.values()),
            "failed": sum(s.failed for s in self._workers.values()),
        }

    def summary(self) -> dict[str, Any]:
        results = self.framework_results()
        finished = results["finished"]
        return {
            "total_tests": finished,
            "passed": results["passed"],
            "failed": results["failed"],
            "skipped": sum(s.skipped for s in self._workers.values()),
            "duration": time.time() - self._start_time,
            "exit_code": self.exit_code(),
            "workers": len(self._workers),
            "success_rate": round(results["passed"] / finished * 100) if finished else 0,
        }

    def to_dict(self) -> dict[str, Any]:
        return {worker_id: asdict(stats) for worker_id, stats in self._workers.items()}

    def merge(self, data: dict[str, Any]) -> None:
        """Add counters produced by another process's ``to_dict()``."""
        for worker_id, values in data.items():
            stats = self._workers.setdefault(worker_id, WorkerStats())
            stats.passed += int(values.get("passed", 0))
            stats.failed += int(values.get("failed", 0))
            stats.skipped += int(values.get("skipped", 0))
            stats.total += int(values.get("total", 0))
            stats.duration += float(values.get("duration", 0.0))

    def clear(self) -> None:
        self._workers.clear()
        self._start_time = time.time()
