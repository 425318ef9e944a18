from __future__ import annotations

import threading
import time

import httpx
import pytest

from chessload.aggregator import Aggregator
from chessload.checks import CheckEvaluator
from chessload.executor import RequestExecutor
from chessload.virtual_user import UserState, VirtualUser


def _wait_for(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.005)
    return False


@pytest.fixture
def harness(chess_scenario):
    """Builds a user wired to a handler; returns (user, aggregator, stop, start)."""
    executors = []

    def _build(handler, *, pacing_delay=0.01, gated=False, executor=None):
        if executor is None:
            executor = RequestExecutor("http://chess.test", transport=httpx.MockTransport(handler))
            executors.append(executor)
        aggregator = Aggregator()
        stop = threading.Event()
        start = threading.Event() if gated else None
        user = VirtualUser(
            user_id=7,
            scenario=chess_scenario,
            executor=executor,
            evaluator=CheckEvaluator(),
            aggregator=aggregator,
            stop_event=stop,
            pacing_delay=pacing_delay,
            start_event=start,
        )
        return user, aggregator, stop, start

    yield _build
    for executor in executors:
        executor.close()


def _stop(user, stop):
    stop.set()
    user.request_stop()


class TestVirtualUserStates:
    def test_starts_idle_and_waits_for_start_signal(self, harness, stub):
        user, _, stop, start = harness(stub, gated=True)
        thread = threading.Thread(target=user.run)
        thread.start()
        time.sleep(0.05)
        assert user.state is UserState.IDLE
        assert stub.hits == {}

        start.set()
        assert _wait_for(lambda: user.state is UserState.RUNNING)
        _stop(user, stop)
        thread.join(timeout=2)
        assert user.state is UserState.DRAINED

    def test_request_stop_only_from_running(self, harness, stub):
        user, _, _, _ = harness(stub)
        user.request_stop()
        assert user.state is UserState.IDLE

    def test_stop_before_run_drains_without_iterating(self, harness, stub):
        user, aggregator, stop, _ = harness(stub)
        stop.set()
        user.run()
        assert user.state is UserState.DRAINED
        assert user.iterations == 0
        assert aggregator.finalize(virtual_users=1, duration_s=1, elapsed_s=1).iterations == 0

    def test_cannot_run_twice(self, harness, stub):
        user, _, stop, _ = harness(stub)
        stop.set()
        user.run()
        with pytest.raises(RuntimeError):
            user.run()


class TestVirtualUserLoop:
    def test_each_iteration_runs_every_step_in_order(self, harness):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200)

        user, aggregator, stop, _ = harness(handler)
        thread = threading.Thread(target=user.run)
        thread.start()
        assert _wait_for(lambda: user.iterations >= 2)
        _stop(user, stop)
        thread.join(timeout=2)

        report = aggregator.finalize(virtual_users=1, duration_s=1, elapsed_s=1)
        assert paths[:4] == ["/api/v1/health", "/api/v1/analyze"] * 2
        assert report.requests == 2 * report.iterations
        assert report.checks["health status is 200"].total == report.iterations

    def test_stop_during_pacing_delay_is_prompt(self, harness, stub):
        user, _, stop, _ = harness(stub, pacing_delay=30.0)
        thread = threading.Thread(target=user.run)
        thread.start()
        assert _wait_for(lambda: user.iterations == 1)

        stopped_at = time.monotonic()
        _stop(user, stop)
        thread.join(timeout=5)
        assert not thread.is_alive()
        assert time.monotonic() - stopped_at < 1.0
        assert user.state is UserState.DRAINED
        assert user.iterations == 1

    def test_in_flight_iteration_finishes_after_stop(self, harness):
        entered = threading.Event()
        release = threading.Event()
        paths = []

        def handler(request):
            paths.append(request.url.path)
            if len(paths) == 1:
                entered.set()
                release.wait(timeout=5)
            return httpx.Response(200)

        user, aggregator, stop, _ = harness(handler, pacing_delay=0.0)
        thread = threading.Thread(target=user.run)
        thread.start()
        assert entered.wait(timeout=2)

        _stop(user, stop)
        assert user.state is UserState.STOP_REQUESTED
        release.set()
        thread.join(timeout=2)

        report = aggregator.finalize(virtual_users=1, duration_s=1, elapsed_s=1)
        assert user.state is UserState.DRAINED
        assert paths == ["/api/v1/health", "/api/v1/analyze"]
        assert report.iterations == 1
        assert report.requests == 2

    def test_unexpected_exception_drains_and_is_counted(self, harness):
        class ExplodingExecutor:
            def execute(self, *args, **kwargs):
                raise RuntimeError("kaboom")

        user, aggregator, _, _ = harness(None, executor=ExplodingExecutor())
        user.run()

        assert user.state is UserState.DRAINED
        assert isinstance(user.error, RuntimeError)
        report = aggregator.finalize(virtual_users=1, duration_s=1, elapsed_s=1)
        assert report.failed_users == 1
        assert report.iterations == 0
