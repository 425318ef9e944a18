"""Run report rendering: console summary plus JSON and CSV exports."""

from __future__ import annotations

import csv
import json
from pathlib import Path

import structlog

from chessload.schemas import LatencySummary, RunReport

logger = structlog.get_logger(__name__)

CSV_FIELDS = ("check", "passes", "fails", "total", "pass_rate")


def _latency_line(label: str, latency: LatencySummary) -> str:
    return (
        f"{label:.<28} avg={latency.mean_ms:.2f}ms min={latency.min_ms:.2f}ms "
        f"med={latency.p50_ms:.2f}ms max={latency.max_ms:.2f}ms "
        f"p(90)={latency.p90_ms:.2f}ms p(95)={latency.p95_ms:.2f}ms"
    )


def render_summary(report: RunReport) -> str:
    lines: list[str] = []
    for name, tally in report.checks.items():
        mark = "✓" if tally.fails == 0 else "✗"
        line = f"  {mark} {name}"
        if tally.fails:
            line += f"\n    ↳ {tally.pass_rate:.0%} — ✓ {tally.passes} / ✗ {tally.fails}"
        lines.append(line)
    if lines:
        lines.append("")

    rate = report.elapsed_s and report.requests / report.elapsed_s
    lines.extend(
        [
            f"  {'checks':.<28} {report.check_pass_rate:.2%} ✓ {report.checks_passed} ✗ {report.checks_failed}",
            f"  {'iterations':.<28} {report.iterations}",
            f"  {'http_reqs':.<28} {report.requests} ({rate:.2f}/s)",
            f"  {'transport_errors':.<28} {report.transport_errors}",
            "  " + _latency_line("http_req_duration", report.latency),
        ]
    )
    for name, step in report.steps.items():
        codes = ", ".join(f"{code}={count}" for code, count in sorted(step.status_codes.items()))
        lines.append("  " + _latency_line(f"  {{ step:{name} }}", step.latency))
        lines.append(f"      status: {codes or '-'}  transport_errors: {step.transport_errors}")
    lines.append(
        f"  {'vus':.<28} {report.virtual_users}"
        + (f" ({report.failed_users} failed)" if report.failed_users else "")
    )
    lines.append(f"  {'duration':.<28} {report.elapsed_s:.2f}s (configured {report.duration_s:.2f}s)")
    return "\n".join(lines)


def write_json(report: RunReport, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(report.model_dump(mode="json"), f, indent=2)
    logger.info("Run report saved to %s", path)
    return path


def write_csv(report: RunReport, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for name, tally in report.checks.items():
            writer.writerow(
                {
                    "check": name,
                    "passes": tally.passes,
                    "fails": tally.fails,
                    "total": tally.total,
                    "pass_rate": round(tally.pass_rate, 4),
                }
            )
    logger.info("Check table saved to %s", path)
    return path
