"""Run scheduler: starts N virtual users, stops them after the duration.

The run lasts at least ``duration`` seconds.  After the stop broadcast every
user finishes the iteration it is in, so the overshoot is bounded by the
slowest in-flight iteration.
"""

from __future__ import annotations

import threading
import time

import httpx
import structlog

from chessload.aggregator import Aggregator
from chessload.checks import CheckEvaluator
from chessload.config import ScenarioConfig, check_scenario_config
from chessload.errors import UsageError
from chessload.executor import RequestExecutor
from chessload.scenario import Scenario
from chessload.schemas import RunReport
from chessload.virtual_user import VirtualUser

logger = structlog.get_logger(__name__)


class Scheduler:
    def __init__(
        self,
        config: ScenarioConfig,
        scenario: Scenario,
        *,
        transport: httpx.BaseTransport | None = None,
        aggregator: Aggregator | None = None,
    ) -> None:
        check_scenario_config(config)
        self._config = config
        self._scenario = scenario
        self._transport = transport
        self._aggregator = aggregator or Aggregator()
        self._stop = threading.Event()
        self._start = threading.Event()
        self._started = False
        self.users: list[VirtualUser] = []
        self.elapsed_s: float = 0.0

    @property
    def config(self) -> ScenarioConfig:
        return self._config

    def _new_executor(self) -> RequestExecutor:
        return RequestExecutor(
            self._config.base_url,
            timeout=self._config.request_timeout,
            transport=self._transport,
        )

    def run(self) -> RunReport:
        if self._started:
            raise UsageError("A Scheduler can only run once")
        self._started = True

        cfg = self._config
        evaluator = CheckEvaluator()
        executors = [self._new_executor() for _ in range(cfg.virtual_users)]
        self.users = [
            VirtualUser(
                user_id=i,
                scenario=self._scenario,
                executor=executors[i],
                evaluator=evaluator,
                aggregator=self._aggregator,
                stop_event=self._stop,
                pacing_delay=cfg.pacing_delay,
                start_event=self._start,
            )
            for i in range(cfg.virtual_users)
        ]
        threads = [
            threading.Thread(target=user.run, name=f"vu-{user.user_id}", daemon=True)
            for user in self.users
        ]

        logger.info(
            "Starting run: scenario=%s vus=%d duration=%.1fs pacing=%.1fs target=%s",
            self._scenario.name,
            cfg.virtual_users,
            cfg.duration,
            cfg.pacing_delay,
            cfg.base_url,
        )
        try:
            for thread in threads:
                thread.start()
            started_at = time.monotonic()
            self._start.set()
            try:
                self._wait_until(started_at + cfg.duration)
            except KeyboardInterrupt:
                logger.warning("Interrupted; stopping virtual users early")
        finally:
            self._stop.set()
            self._start.set()
            for user in self.users:
                user.request_stop()
            logger.info("Stopping; waiting for %d virtual users to drain", len(self.users))
            try:
                for thread in threads:
                    if thread.is_alive():
                        thread.join()
            finally:
                for executor in executors:
                    executor.close()

        self.elapsed_s = time.monotonic() - started_at
        logger.info("All virtual users drained after %.2fs", self.elapsed_s)
        return self._aggregator.finalize(
            virtual_users=cfg.virtual_users,
            duration_s=cfg.duration,
            elapsed_s=self.elapsed_s,
        )

    @staticmethod
    def _wait_until(deadline: float) -> None:
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            time.sleep(remaining)
