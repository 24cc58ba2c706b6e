import json

import pytest

from tb_common.errors import ConfigurationError
from tb_runner.models.run import Measurement, MeasurementStatus, RunUnit
from tb_runner.models.version import Branch
from tb_runner.services.aggregator import build_report
from tb_runner.services.results import CSV_FILENAME, REPORT_FILENAME, load_report, persist_report

pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]


@pytest.fixture
def report():
    run_unit = RunUnit(bench_id="unary", backend_id="wgpu", dtype="f32", version=Branch("main"))
    measurement = Measurement(run_unit=run_unit, status=MeasurementStatus.SUCCESS, wall_time_samples=[0.1, 0.3])
    return build_report([measurement], environment=None, run_id="run-42")


def test_persist_writes_report_and_csv(tmp_path, report):
    saved = persist_report(report, tmp_path)
    assert saved.local_path == tmp_path / "run-42" / REPORT_FILENAME
    assert (tmp_path / "run-42" / CSV_FILENAME).exists()
    payload = json.loads(saved.local_path.read_text())
    assert payload["runId"] == "run-42"
    assert payload["records"][0]["mean"] == pytest.approx(0.2)
    assert not list((tmp_path / "run-42").glob("*.tmp"))


def test_load_report_from_file_or_directory(tmp_path, report):
    saved = persist_report(report, tmp_path)
    from_file = load_report(saved.local_path)
    from_dir = load_report(tmp_path / "run-42")
    assert from_file.summaries == report.summaries
    assert from_dir.local_path == saved.local_path


def test_load_report_errors(tmp_path):
    with pytest.raises(ConfigurationError):
        load_report(tmp_path / "missing.json")
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ConfigurationError):
        load_report(broken)
    other = tmp_path / "other.json"
    other.write_text(json.dumps({"hello": "world"}))
    with pytest.raises(ConfigurationError):
        load_report(other)
