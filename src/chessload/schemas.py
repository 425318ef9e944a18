"""Pydantic v2 schemas for chessload.

Per-request outcomes, check results, the aggregated run report, and the
request body accepted by the chess analysis endpoint.
"""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class OutcomeKind(StrEnum):
    RESPONSE = "response"
    TRANSPORT_ERROR = "transport_error"


class RequestOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: str
    method: str
    url: str
    latency_ms: float = Field(ge=0.0)
    kind: OutcomeKind = OutcomeKind.RESPONSE
    status_code: int | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _status_matches_kind(self) -> RequestOutcome:
        if self.kind is OutcomeKind.RESPONSE and self.status_code is None:
            raise ValueError("a response outcome needs a status code")
        if self.kind is OutcomeKind.TRANSPORT_ERROR and self.status_code is not None:
            raise ValueError("a transport error outcome has no status code")
        return self

    @property
    def is_transport_error(self) -> bool:
        return self.kind is OutcomeKind.TRANSPORT_ERROR


class CheckResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    passed: bool
    outcome: RequestOutcome
    error: str | None = None


class IterationResult(BaseModel):
    """Everything one virtual user produced during one pass of its scenario."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    iteration: int
    outcomes: tuple[RequestOutcome, ...] = ()
    checks: tuple[CheckResult, ...] = ()


# ---------------------------------------------------------------------------
# Report models
# ---------------------------------------------------------------------------


class CheckTally(BaseModel):
    model_config = ConfigDict(frozen=True)

    passes: int = 0
    fails: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return self.passes + self.fails

    @computed_field  # type: ignore[prop-decorator]
    @property
    def pass_rate(self) -> float:
        return self.passes / self.total if self.total else 0.0


def _nearest_rank(ordered: list[float], pct: float) -> float:
    rank = max(math.ceil(pct / 100.0 * len(ordered)), 1)
    return ordered[rank - 1]


class LatencySummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int = 0
    min_ms: float = 0.0
    max_ms: float = 0.0
    mean_ms: float = 0.0
    p50_ms: float = 0.0
    p90_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0

    @classmethod
    def from_samples(cls, samples: list[float]) -> LatencySummary:
        if not samples:
            return cls()
        ordered = sorted(samples)
        return cls(
            count=len(ordered),
            min_ms=ordered[0],
            max_ms=ordered[-1],
            mean_ms=sum(ordered) / len(ordered),
            p50_ms=_nearest_rank(ordered, 50),
            p90_ms=_nearest_rank(ordered, 90),
            p95_ms=_nearest_rank(ordered, 95),
            p99_ms=_nearest_rank(ordered, 99),
        )


class StepStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    requests: int = 0
    transport_errors: int = 0
    status_codes: dict[str, int] = Field(default_factory=dict)
    latency: LatencySummary = Field(default_factory=LatencySummary)


class RunReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    virtual_users: int
    duration_s: float
    elapsed_s: float
    iterations: int = 0
    requests: int = 0
    transport_errors: int = 0
    failed_users: int = 0
    checks: dict[str, CheckTally] = Field(default_factory=dict)
    latency: LatencySummary = Field(default_factory=LatencySummary)
    steps: dict[str, StepStats] = Field(default_factory=dict)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def checks_passed(self) -> int:
        return sum(t.passes for t in self.checks.values())

    @computed_field  # type: ignore[prop-decorator]
    @property
    def checks_failed(self) -> int:
        return sum(t.fails for t in self.checks.values())

    @computed_field  # type: ignore[prop-decorator]
    @property
    def check_pass_rate(self) -> float:
        total = self.checks_passed + self.checks_failed
        return self.checks_passed / total if total else 0.0


# ---------------------------------------------------------------------------
# Request bodies for the system under test
# ---------------------------------------------------------------------------

_POSITION_FIELDS = ("fen", "pgn", "uci", "san")


class AnalyzeRequest(BaseModel):
    """Body of ``POST /api/v1/analyze``: exactly one position encoding."""

    model_config = ConfigDict(frozen=True)

    fen: str = ""
    pgn: str = ""
    uci: str = ""
    san: str = ""

    @model_validator(mode="after")
    def _exactly_one_position(self) -> AnalyzeRequest:
        provided = [f for f in _POSITION_FIELDS if getattr(self, f).strip()]
        if len(provided) != 1:
            raise ValueError("provide exactly one of: fen, pgn, uci, san")
        return self

    def payload(self) -> dict[str, Any]:
        return {f: getattr(self, f).strip() for f in _POSITION_FIELDS if getattr(self, f).strip()}
