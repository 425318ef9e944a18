"""Scenario model: an ordered list of request steps, each with its checks.

The bundled chess-API scenario hits the health endpoint and then asks the
engine to analyse the position after 1. e4.  Other scenarios can be written
in YAML and loaded with :func:`load_scenario`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import httpx
import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from chessload.checks import Predicate, latency_below, not_transport_error, status_in_range, status_is
from chessload.errors import ConfigurationError
from chessload.schemas import AnalyzeRequest

logger = structlog.get_logger(__name__)

HEALTH_PATH = "/api/v1/health"
ANALYZE_PATH = "/api/v1/analyze"
DEFAULT_FEN = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 1"
JSON_HEADERS = {"Content-Type": "application/json"}
HTTP_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"})


def _request_problems(method: str, path: str, body: Any) -> dict[str, str]:
    problems: dict[str, str] = {}
    if method.upper() not in HTTP_METHODS:
        problems["method"] = f"unsupported HTTP method {method!r}"
    if path.startswith(("http://", "https://")):
        try:
            httpx.URL(path)
        except httpx.InvalidURL as exc:
            problems["path"] = f"malformed URL {path!r}: {exc}"
    elif not path.startswith("/"):
        problems["path"] = f"must start with '/' or be an absolute http(s) URL, got {path!r}"
    if body is not None:
        try:
            json.dumps(body)
        except (TypeError, ValueError) as exc:
            problems["json"] = f"body is not JSON serializable: {exc}"
    return problems


@dataclass(frozen=True)
class Step:
    name: str
    method: str
    path: str
    json: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    checks: dict[str, Predicate] = field(default_factory=dict)

    def __post_init__(self) -> None:
        problems = _request_problems(self.method, self.path, self.json)
        if problems:
            raise ConfigurationError(f"Invalid step {self.name!r}", details=problems)


@dataclass(frozen=True)
class Scenario:
    name: str
    steps: tuple[Step, ...]

    def __post_init__(self) -> None:
        if not self.steps:
            raise ConfigurationError(f"Scenario {self.name!r} has no steps")


def chess_api_scenario(position: AnalyzeRequest | None = None) -> Scenario:
    position = position or AnalyzeRequest(fen=DEFAULT_FEN)
    return Scenario(
        name="chess-api",
        steps=(
            Step(
                name="health",
                method="GET",
                path=HEALTH_PATH,
                checks={"health status is 200": status_is(200)},
            ),
            Step(
                name="analyze",
                method="POST",
                path=ANALYZE_PATH,
                json=position.payload(),
                headers=dict(JSON_HEADERS),
                checks={"analyze status is 200": status_is(200)},
            ),
        ),
    )


# ---------------------------------------------------------------------------
# YAML scenario files
# ---------------------------------------------------------------------------


class CheckSpec(BaseModel):
    model_config = {"extra": "forbid"}

    status: list[int] | None = None
    status_range: tuple[int, int] | None = None
    max_latency_ms: float | None = Field(default=None, gt=0)
    no_transport_error: Literal[True] | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _listify(cls, v: Any) -> Any:
        return [v] if isinstance(v, int) else v

    @model_validator(mode="after")
    def _exactly_one_rule(self) -> CheckSpec:
        rules = [v for v in (self.status, self.status_range, self.max_latency_ms, self.no_transport_error) if v is not None]
        if len(rules) != 1:
            raise ValueError("a check needs exactly one of: status, status_range, max_latency_ms, no_transport_error")
        return self

    def to_predicate(self) -> Predicate:
        if self.status is not None:
            return status_is(*self.status)
        if self.status_range is not None:
            return status_in_range(*self.status_range)
        if self.max_latency_ms is not None:
            return latency_below(self.max_latency_ms)
        return not_transport_error()


class StepSpec(BaseModel):
    model_config = {"extra": "forbid"}

    name: str = Field(..., min_length=1)
    method: str = "GET"
    path: str = Field(..., min_length=1)
    json_body: Any = Field(default=None, alias="json")
    position: AnalyzeRequest | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    checks: dict[str, CheckSpec] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _one_body(self) -> StepSpec:
        if self.json_body is not None and self.position is not None:
            raise ValueError("use either 'json' or 'position', not both")
        problems = _request_problems(self.method, self.path, self.json_body)
        if problems:
            raise ValueError("; ".join(f"{key}: {msg}" for key, msg in problems.items()))
        return self

    def to_step(self) -> Step:
        body = self.position.payload() if self.position is not None else self.json_body
        headers = dict(self.headers)
        if body is not None:
            headers.setdefault("Content-Type", JSON_HEADERS["Content-Type"])
        return Step(
            name=self.name,
            method=self.method.upper(),
            path=self.path,
            json=body,
            headers=headers,
            checks={name: spec.to_predicate() for name, spec in self.checks.items()},
        )


class ScenarioSpec(BaseModel):
    model_config = {"extra": "forbid"}

    name: str = Field(..., min_length=1)
    steps: list[StepSpec] = Field(..., min_length=1)

    def to_scenario(self) -> Scenario:
        return Scenario(name=self.name, steps=tuple(s.to_step() for s in self.steps))


def load_scenario(path: str | Path) -> Scenario:
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot read scenario file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Scenario file {path} must contain a mapping")

    try:
        spec = ScenarioSpec.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid scenario file {path}",
            details={"errors": exc.errors(include_url=False)},
        ) from exc

    scenario = spec.to_scenario()
    logger.info("Loaded scenario %s with %d steps from %s", scenario.name, len(scenario.steps), path)
    return scenario
