"""Thread-safe accumulation of iteration results into a RunReport."""

from __future__ import annotations

import threading
from collections import Counter, defaultdict
from dataclasses import dataclass, field

import structlog

from chessload.errors import UsageError
from chessload.schemas import CheckTally, IterationResult, LatencySummary, RunReport, StepStats

logger = structlog.get_logger(__name__)


@dataclass
class _StepAccumulator:
    requests: int = 0
    transport_errors: int = 0
    status_codes: Counter = field(default_factory=Counter)
    latencies: list[float] = field(default_factory=list)


class Aggregator:
    """Collects results from all virtual users.

    ``record`` may be called from any number of threads at once.  The lock
    only guards counter updates; it is never held across network I/O.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active_users = 0
        self._failed_users = 0
        self._iterations = 0
        self._requests = 0
        self._transport_errors = 0
        self._latencies: list[float] = []
        self._passes: dict[str, int] = {}
        self._fails: dict[str, int] = {}
        self._steps: defaultdict[str, _StepAccumulator] = defaultdict(_StepAccumulator)
        self._report: RunReport | None = None

    # -- lifecycle of the producers ------------------------------------------

    def user_started(self) -> None:
        with self._lock:
            self._ensure_open()
            self._active_users += 1

    def user_finished(self, *, failed: bool = False) -> None:
        with self._lock:
            if self._active_users <= 0:
                raise UsageError("user_finished() called with no active users")
            self._active_users -= 1
            if failed:
                self._failed_users += 1

    @property
    def active_users(self) -> int:
        with self._lock:
            return self._active_users

    # -- ingestion -------------------------------------------------------------

    def record(self, result: IterationResult) -> None:
        with self._lock:
            self._ensure_open()
            self._iterations += 1
            for outcome in result.outcomes:
                self._requests += 1
                self._latencies.append(outcome.latency_ms)
                step = self._steps[outcome.step]
                step.requests += 1
                step.latencies.append(outcome.latency_ms)
                if outcome.is_transport_error:
                    self._transport_errors += 1
                    step.transport_errors += 1
                else:
                    step.status_codes[str(outcome.status_code)] += 1
            for check in result.checks:
                self._passes.setdefault(check.name, 0)
                self._fails.setdefault(check.name, 0)
                if check.passed:
                    self._passes[check.name] += 1
                else:
                    self._fails[check.name] += 1

    def _ensure_open(self) -> None:
        if self._report is not None:
            raise UsageError("Aggregator has already been finalized")

    # -- reporting -------------------------------------------------------------

    def finalize(self, *, virtual_users: int, duration_s: float, elapsed_s: float) -> RunReport:
        with self._lock:
            if self._report is not None:
                raise UsageError("Aggregator has already been finalized")
            if self._active_users:
                raise UsageError(
                    "Cannot finalize while virtual users are still running",
                    details={"active_users": self._active_users},
                )
            self._report = RunReport(
                virtual_users=virtual_users,
                duration_s=duration_s,
                elapsed_s=elapsed_s,
                iterations=self._iterations,
                requests=self._requests,
                transport_errors=self._transport_errors,
                failed_users=self._failed_users,
                checks={
                    name: CheckTally(passes=self._passes[name], fails=self._fails[name])
                    for name in self._passes
                },
                latency=LatencySummary.from_samples(self._latencies),
                steps={
                    name: StepStats(
                        requests=acc.requests,
                        transport_errors=acc.transport_errors,
                        status_codes=dict(acc.status_codes),
                        latency=LatencySummary.from_samples(acc.latencies),
                    )
                    for name, acc in self._steps.items()
                },
            )
        logger.info(
            "Run finalized: %d iterations, %d requests, %.1f%% checks passed",
            self._report.iterations,
            self._report.requests,
            self._report.check_pass_rate * 100,
        )
        return self._report
