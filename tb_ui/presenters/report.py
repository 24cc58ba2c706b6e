"""Presenters for reports, run progress and the catalog."""

from __future__ import annotations

from typing import Iterable, Mapping

from tb_runner.api import BackendSpec, Report, RunEvent
from tb_ui.tui.system.models import TableModel


_STATUS_MARKUP = {
    "success": "[green]success[/green]",
    "failed": "[red]failed[/red]",
    "skipped": "[yellow]skipped[/yellow]",
}


def format_duration(seconds: float | None) -> str:
    """Render a duration with a unit suited to its magnitude."""
    if seconds is None:
        return "-"
    if seconds >= 1:
        return f"{seconds:.3f}s"
    if seconds >= 1e-3:
        return f"{seconds * 1e3:.3f}ms"
    return f"{seconds * 1e6:.1f}µs"


def build_report_table(report: Report, markup: bool = True) -> TableModel:
    columns = [
        "Version",
        "Backend",
        "Bench",
        "Case",
        "DType",
        "Status",
        "Samples",
        "Mean",
        "Median",
        "Min",
        "Max",
        "Stddev",
        "Reason",
    ]
    rows: list[list[str]] = []
    for measurement in report.measurements:
        unit = measurement.run_unit
        summary = report.summary_for(unit)
        status = measurement.status.value
        rows.append(
            [
                unit.version.label,
                unit.backend_id,
                unit.bench_id,
                unit.case,
                unit.dtype,
                _STATUS_MARKUP.get(status, status) if markup else status,
                str(summary.num_samples if summary else len(measurement.wall_time_samples)),
                format_duration(summary.mean if summary else None),
                format_duration(summary.median if summary else None),
                format_duration(summary.min if summary else None),
                format_duration(summary.max if summary else None),
                format_duration(summary.stddev if summary else None),
                measurement.reason,
            ]
        )
    return TableModel(title=f"Benchmark results (run {report.run_id})", columns=columns, rows=rows)


def summarize_counts(report: Report) -> str:
    counts = report.counts()
    return ", ".join(f"{counts[key]} {key}" for key in ("success", "failed", "skipped"))


def format_event(event: RunEvent) -> str:
    position = f"[{event.index + 1}/{event.total}]"
    if event.message:
        return f"{position} {event.unit}: {event.status} ({event.message})"
    return f"{position} {event.unit}: {event.status}"


def build_catalog_table(
    benches: Mapping[str, Iterable[str]],
    backends: Mapping[str, BackendSpec],
    tools: Mapping[str, Iterable[str]] | None = None,
    missing: Mapping[str, Iterable[str]] | None = None,
) -> list[TableModel]:
    tools = tools or {}
    missing = missing or {}
    bench_rows = [
        [name, ", ".join(cases), _format_tools(tools.get(name, ()), missing.get(name, ()))]
        for name, cases in sorted(benches.items())
    ]
    backend_rows = [
        [
            spec.name,
            ", ".join(sorted(spec.dtypes)),
            "yes" if spec.exclusive_hardware else "no",
            ", ".join(spec.cargo_features("f32")),
        ]
        for spec in sorted(backends.values(), key=lambda s: s.name)
    ]
    return [
        TableModel(title="Bench suites", columns=["Bench", "Cases", "Tools"], rows=bench_rows),
        TableModel(
            title="Backends",
            columns=["Backend", "DTypes", "Exclusive", "Features"],
            rows=backend_rows,
        ),
    ]


def _format_tools(tools: Iterable[str], missing: Iterable[str]) -> str:
    absent = set(missing)
    return ", ".join(f"{tool} (missing)" if tool in absent else tool for tool in tools)
