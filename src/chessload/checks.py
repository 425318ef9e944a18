"""Named boolean assertions evaluated against request outcomes."""

from __future__ import annotations

from collections.abc import Callable, Mapping

import structlog

from chessload.schemas import CheckResult, RequestOutcome

logger = structlog.get_logger(__name__)

Predicate = Callable[[RequestOutcome], object]


class CheckEvaluator:
    def evaluate(
        self,
        outcome: RequestOutcome,
        checks: Mapping[str, Predicate],
    ) -> tuple[CheckResult, ...]:
        """Run every predicate in *checks* against *outcome*, in order.

        A predicate that raises counts as a failed check; the remaining
        predicates still run.
        """
        results: list[CheckResult] = []
        for name, predicate in checks.items():
            try:
                passed = bool(predicate(outcome))
            except Exception as exc:
                logger.warning("Check %r raised %s: %s", name, type(exc).__name__, exc)
                results.append(
                    CheckResult(
                        name=name,
                        passed=False,
                        outcome=outcome,
                        error=f"{type(exc).__name__}: {exc}",
                    )
                )
                continue
            results.append(CheckResult(name=name, passed=passed, outcome=outcome))
        return tuple(results)


# ---------------------------------------------------------------------------
# Predicate builders
# ---------------------------------------------------------------------------


def status_is(*codes: int) -> Predicate:
    allowed = frozenset(codes)

    def _check(outcome: RequestOutcome) -> bool:
        return outcome.status_code in allowed

    return _check


def status_in_range(low: int, high: int) -> Predicate:
    """Inclusive *low*, exclusive *high*; ``status_in_range(200, 300)`` is any 2xx."""

    def _check(outcome: RequestOutcome) -> bool:
        return outcome.status_code is not None and low <= outcome.status_code < high

    return _check


def not_transport_error() -> Predicate:
    def _check(outcome: RequestOutcome) -> bool:
        return not outcome.is_transport_error

    return _check


def latency_below(max_ms: float) -> Predicate:
    def _check(outcome: RequestOutcome) -> bool:
        return not outcome.is_transport_error and outcome.latency_ms < max_ms

    return _check
