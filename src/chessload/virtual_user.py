"""Virtual user: one independent loop over a scenario.

Each user moves through IDLE → RUNNING → STOP_REQUESTED → DRAINED.  Stop is
observed at the top of every iteration and during the pacing delay; an
iteration that has already begun always runs to completion.
"""

from __future__ import annotations

import enum
import threading

import structlog

from chessload.aggregator import Aggregator
from chessload.checks import CheckEvaluator
from chessload.executor import RequestExecutor
from chessload.scenario import Scenario
from chessload.schemas import CheckResult, IterationResult, RequestOutcome

logger = structlog.get_logger(__name__)


class UserState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOP_REQUESTED = "stop_requested"
    DRAINED = "drained"


class VirtualUser:
    def __init__(
        self,
        user_id: int,
        scenario: Scenario,
        executor: RequestExecutor,
        evaluator: CheckEvaluator,
        aggregator: Aggregator,
        stop_event: threading.Event,
        pacing_delay: float,
        start_event: threading.Event | None = None,
    ) -> None:
        self.user_id = user_id
        self.iterations = 0
        self.error: BaseException | None = None
        self._scenario = scenario
        self._executor = executor
        self._evaluator = evaluator
        self._aggregator = aggregator
        self._stop = stop_event
        self._start = start_event
        self._pacing_delay = pacing_delay
        self._state = UserState.IDLE
        self._state_lock = threading.Lock()
        self._log = logger.bind(user_id=user_id)

    @property
    def state(self) -> UserState:
        with self._state_lock:
            return self._state

    def _transition(self, *, to: UserState, allowed_from: tuple[UserState, ...]) -> bool:
        with self._state_lock:
            if self._state not in allowed_from:
                return False
            self._state = to
            return True

    def request_stop(self) -> None:
        """Mark the user as stopping; the shared stop event wakes it up."""
        if self._transition(to=UserState.STOP_REQUESTED, allowed_from=(UserState.RUNNING,)):
            self._log.debug("Stop requested")

    def run(self) -> None:
        if self._start is not None:
            self._start.wait()
        if not self._transition(to=UserState.RUNNING, allowed_from=(UserState.IDLE,)):
            raise RuntimeError(f"virtual user {self.user_id} was already started")

        self._aggregator.user_started()
        self._log.debug("Virtual user running")
        failed = False
        try:
            while not self._stop.is_set():
                self._aggregator.record(self._run_iteration())
                self.iterations += 1
                if self._stop.wait(self._pacing_delay):
                    break
        except Exception as exc:
            failed = True
            self.error = exc
            self._log.exception("Virtual user failed after %d iterations", self.iterations)
        finally:
            with self._state_lock:
                self._state = UserState.DRAINED
            self._aggregator.user_finished(failed=failed)
            self._log.debug("Virtual user drained after %d iterations", self.iterations)

    def _run_iteration(self) -> IterationResult:
        outcomes: list[RequestOutcome] = []
        checks: list[CheckResult] = []
        for step in self._scenario.steps:
            outcome = self._executor.execute(
                step.name,
                step.method,
                step.path,
                json=step.json,
                headers=step.headers or None,
            )
            outcomes.append(outcome)
            checks.extend(self._evaluator.evaluate(outcome, step.checks))
        return IterationResult(
            user_id=self.user_id,
            iteration=self.iterations,
            outcomes=tuple(outcomes),
            checks=tuple(checks),
        )
