import pytest

from tb_runner.catalog import DEFAULT_BACKENDS
from tb_runner.models.events import RunEvent
from tb_runner.models.run import Measurement, MeasurementStatus, RunUnit
from tb_runner.models.version import Branch
from tb_runner.services.aggregator import build_report
from tb_ui.presenters.report import (
    build_catalog_table,
    build_report_table,
    format_duration,
    format_event,
    summarize_counts,
)

pytestmark = [pytest.mark.unit, pytest.mark.unit_ui]


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(None, "-"), (1.5, "1.500s"), (0.0025, "2.500ms"), (0.0000042, "4.2µs")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_report_table_rows():
    unit_ok = RunUnit(bench_id="unary", backend_id="wgpu", dtype="f32", version=Branch("main"), index=0)
    unit_skip = RunUnit(bench_id="unary", backend_id="ndarray", dtype="f16", version=Branch("main"), index=1)
    report = build_report(
        [
            Measurement(run_unit=unit_ok, status=MeasurementStatus.SUCCESS, wall_time_samples=[1.0, 3.0]),
            Measurement.skipped(unit_skip, "unsupported"),
        ],
        environment=None,
        run_id="run-1",
    )
    table = build_report_table(report, markup=False)
    assert table.title == "Benchmark results (run run-1)"
    assert table.rows[0][:8] == ["main", "wgpu", "unary", "unary", "f32", "success", "2", "2.000s"]
    assert table.rows[1][5] == "skipped"
    assert table.rows[1][-1] == "unsupported"
    assert summarize_counts(report) == "1 success, 0 failed, 1 skipped"


def test_format_event():
    event = RunEvent(run_id="r", unit="main/wgpu/unary/unary/f32", index=2, total=5, status="failed", message="boom")
    assert format_event(event) == "[3/5] main/wgpu/unary/unary/f32: failed (boom)"


def test_catalog_tables():
    suites, backends = build_catalog_table({"unary": ["unary"]}, {"wgpu": DEFAULT_BACKENDS["wgpu"]})
    assert suites.rows == [["unary", "unary", ""]]
    assert backends.rows == [["wgpu", "f32", "yes", "wgpu"]]
