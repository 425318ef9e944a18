from __future__ import annotations

import pytest
from pydantic import ValidationError

from chessload.schemas import (
    AnalyzeRequest,
    CheckTally,
    LatencySummary,
    OutcomeKind,
    RequestOutcome,
    RunReport,
)


class TestRequestOutcome:
    def test_response_outcome(self, make_outcome):
        outcome = make_outcome(status_code=503)
        assert outcome.kind is OutcomeKind.RESPONSE
        assert outcome.status_code == 503
        assert outcome.is_transport_error is False

    def test_transport_error_outcome(self, make_outcome):
        outcome = make_outcome(transport_error=True)
        assert outcome.is_transport_error is True
        assert outcome.status_code is None
        assert "ConnectError" in outcome.error

    def test_response_requires_status(self):
        with pytest.raises(ValidationError):
            RequestOutcome(step="s", method="GET", url="http://x", latency_ms=1.0)

    def test_transport_error_rejects_status(self):
        with pytest.raises(ValidationError):
            RequestOutcome(
                step="s",
                method="GET",
                url="http://x",
                latency_ms=1.0,
                kind=OutcomeKind.TRANSPORT_ERROR,
                status_code=200,
            )

    def test_is_frozen(self, make_outcome):
        outcome = make_outcome()
        with pytest.raises(ValidationError):
            outcome.status_code = 500


class TestLatencySummary:
    def test_empty_samples(self):
        summary = LatencySummary.from_samples([])
        assert summary.count == 0
        assert summary.max_ms == 0.0
        assert summary.p95_ms == 0.0

    def test_nearest_rank_percentiles(self):
        summary = LatencySummary.from_samples([float(i) for i in range(100, 0, -1)])
        assert summary.count == 100
        assert summary.min_ms == 1.0
        assert summary.max_ms == 100.0
        assert summary.mean_ms == pytest.approx(50.5)
        assert summary.p50_ms == 50.0
        assert summary.p90_ms == 90.0
        assert summary.p95_ms == 95.0
        assert summary.p99_ms == 99.0

    def test_single_sample(self):
        summary = LatencySummary.from_samples([42.0])
        assert summary.p50_ms == summary.p99_ms == summary.min_ms == 42.0


class TestCheckTally:
    def test_pass_rate(self):
        tally = CheckTally(passes=3, fails=1)
        assert tally.total == 4
        assert tally.pass_rate == pytest.approx(0.75)

    def test_empty_pass_rate_is_zero(self):
        assert CheckTally().pass_rate == 0.0


class TestRunReport:
    def test_derived_check_totals(self):
        report = RunReport(
            virtual_users=1,
            duration_s=1.0,
            elapsed_s=1.0,
            checks={"a": CheckTally(passes=2, fails=0), "b": CheckTally(passes=0, fails=2)},
        )
        assert report.checks_passed == 2
        assert report.checks_failed == 2
        assert report.check_pass_rate == pytest.approx(0.5)

    def test_dump_includes_derived_fields(self):
        dumped = RunReport(virtual_users=1, duration_s=1.0, elapsed_s=1.0).model_dump()
        assert dumped["check_pass_rate"] == 0.0
        assert "checks_passed" in dumped


class TestAnalyzeRequest:
    def test_single_field(self):
        req = AnalyzeRequest(fen="  8/8/8/8/8/8/8/K6k w - - 0 1  ")
        assert req.payload() == {"fen": "8/8/8/8/8/8/8/K6k w - - 0 1"}

    @pytest.mark.parametrize("fields", [{}, {"fen": "x", "san": "e4"}, {"uci": "   "}])
    def test_requires_exactly_one_field(self, fields):
        with pytest.raises(ValidationError):
            AnalyzeRequest(**fields)
