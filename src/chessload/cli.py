from __future__ import annotations

import argparse
import sys

import structlog
from pydantic import ValidationError

from chessload.config import get_settings, parse_duration
from chessload.errors import ChessLoadError, ConfigurationError
from chessload.observability.logging_config import configure_logging
from chessload.reporting import render_summary, write_csv, write_json
from chessload.scenario import chess_api_scenario, load_scenario
from chessload.scheduler import Scheduler

logger = structlog.get_logger(__name__)


def _duration(value: str) -> float:
    try:
        return parse_duration(value)
    except ConfigurationError as exc:
        raise argparse.ArgumentTypeError(exc.message) from exc


def _rate(value: str) -> float:
    try:
        rate = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid rate: {value!r}") from exc
    if not 0.0 <= rate <= 1.0:
        raise argparse.ArgumentTypeError(f"Rate must be between 0 and 1, got {value!r}")
    return rate


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chessload", description="Load-test a chess analysis API")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a load test and print the summary")
    run.add_argument("--base-url", type=str, default=None, help="Target service root")
    run.add_argument("--vus", type=int, default=None, help="Number of concurrent virtual users")
    run.add_argument("--duration", type=_duration, default=None, help="Run length, e.g. 10s or 2m")
    run.add_argument("--pacing", type=_duration, default=None, help="Sleep between iterations, e.g. 1s")
    run.add_argument("--timeout", type=_duration, default=None, help="Per-request timeout")
    run.add_argument("--scenario", type=str, default=None, help="YAML scenario file (default: chess API)")
    run.add_argument("--json", dest="json_path", type=str, default=None, help="Write the report as JSON")
    run.add_argument("--csv", dest="csv_path", type=str, default=None, help="Write the check table as CSV")
    run.add_argument("--threshold", type=_rate, default=None, help="Minimum check pass rate (0-1)")
    run.add_argument("--log-level", type=str, default=None, help="DEBUG, INFO, WARNING or ERROR")
    run.add_argument("--log-json", action="store_true", help="Emit logs as JSON")
    run.add_argument("--dry-run", action="store_true", help="Target the in-process API stub")
    return parser


def run_command(args: argparse.Namespace) -> int:
    try:
        settings = get_settings()
    except ValidationError as exc:
        raise ConfigurationError(
            "Invalid settings", details={"errors": exc.errors(include_url=False)}
        ) from exc
    configure_logging(
        json_output=args.log_json or settings.log_json,
        log_level=args.log_level or settings.log_level,
    )

    config = settings.scenario_config(
        base_url=args.base_url,
        virtual_users=args.vus,
        duration=args.duration,
        pacing_delay=args.pacing,
        request_timeout=args.timeout,
    )
    scenario = load_scenario(args.scenario) if args.scenario else chess_api_scenario()

    transport = None
    if args.dry_run:
        from chessload.testing.stub_target import ChessApiStub

        transport = ChessApiStub().transport()

    report = Scheduler(config, scenario, transport=transport).run()

    print(render_summary(report))
    if args.json_path:
        write_json(report, args.json_path)
    if args.csv_path:
        write_csv(report, args.csv_path)

    threshold = args.threshold if args.threshold is not None else settings.pass_rate_threshold
    if threshold and report.check_pass_rate < threshold:
        logger.warning(
            "Check pass rate %.2f%% is below threshold %.2f%%",
            report.check_pass_rate * 100,
            threshold * 100,
        )
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return run_command(args)
    except ChessLoadError as exc:
        logger.error("%s: %s", exc.error_code, exc.message, details=exc.details)
        print(f"error: {exc.message}", file=sys.stderr)
        return exc.exit_code


if __name__ == "__main__":
    sys.exit(main())
