from __future__ import annotations

import logging
import os

import pytest

os.environ["CHESSLOAD_ENV"] = "test"  # Prevents loading dev/staging/prod profile overlays


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    from chessload.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def stub():
    from chessload.testing.stub_target import ChessApiStub

    return ChessApiStub()


@pytest.fixture
def chess_scenario():
    from chessload.scenario import chess_api_scenario

    return chess_api_scenario()


@pytest.fixture
def make_config():
    from chessload.config import ScenarioConfig

    def _make(**overrides):
        values = {
            "base_url": "http://chess.test",
            "virtual_users": 2,
            "duration": 0.3,
            "pacing_delay": 0.05,
            "request_timeout": 2.0,
        }
        values.update(overrides)
        return ScenarioConfig(**values)

    return _make


@pytest.fixture
def make_outcome():
    from chessload.schemas import OutcomeKind, RequestOutcome

    def _make(step="health", status_code=200, latency_ms=10.0, transport_error=False):
        if transport_error:
            return RequestOutcome(
                step=step,
                method="GET",
                url=f"http://chess.test/{step}",
                latency_ms=latency_ms,
                kind=OutcomeKind.TRANSPORT_ERROR,
                error="ConnectError: Connection refused",
            )
        return RequestOutcome(
            step=step,
            method="GET",
            url=f"http://chess.test/{step}",
            latency_ms=latency_ms,
            status_code=status_code,
        )

    return _make
