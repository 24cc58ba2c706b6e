"""CLI behavior tests using Typer's CliRunner."""

import pytest
from typer.testing import CliRunner

import tb_ui.cli as cli
from tb_common.errors import AuthError, AuthFailure, UploadError
from tb_runner.models.events import RunEvent
from tb_runner.models.run import Measurement, MeasurementStatus, RunUnit
from tb_runner.models.version import Local
from tb_runner.plugin_system.registry import WorkloadRegistry
from tb_runner.services.aggregator import build_report
from tb_runner.services.results import persist_report
from tb_share.client import UploadResult
from tb_ui.tui.system.headless import HeadlessUI

pytestmark = [pytest.mark.unit, pytest.mark.unit_ui]

runner = CliRunner()


def make_report(statuses, output_dir=None):
    measurements = []
    for index, status in enumerate(statuses):
        unit = RunUnit(bench_id=f"bench{index}", backend_id="wgpu", dtype="f32", version=Local(), index=index)
        samples = [0.1, 0.2] if status is MeasurementStatus.SUCCESS else []
        measurements.append(Measurement(run_unit=unit, status=status, wall_time_samples=samples, reason=""))
    report = build_report(measurements, environment=None, run_id="run-cli")
    return persist_report(report, output_dir) if output_dir else report


class FakeRunner:
    instances = []

    def __init__(self, config, progress_callback=None, stop_token=None):
        self.config = config
        self.progress_callback = progress_callback
        self.stop_token = stop_token
        self.statuses = [MeasurementStatus.SUCCESS]
        FakeRunner.instances.append(self)

    def run(self, run_id=None):
        if self.progress_callback:
            self.progress_callback(RunEvent(run_id="run-cli", unit="local/wgpu/bench0/bench0/f32", index=0, total=1, status="success"))
        return make_report(self.statuses, self.config.output_dir)


class FakeClient:
    def __init__(self, error=None, token=None):
        self.error = error
        self.token = token
        self.shared = []

    def share(self, report):
        if self.error is not None:
            raise self.error
        self.shared.append(report)
        return UploadResult(run_id=report.run_id, status=201, url="https://bench.example/benchmarks")

    def current_token(self):
        return self.token

    def logout(self):
        return False


@pytest.fixture
def ui(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for var in ("TB_BENCHES", "TB_BACKENDS", "TB_VERSIONS", "TB_SHARE", "TB_STOP_FILE"):
        monkeypatch.delenv(var, raising=False)
    headless = HeadlessUI()
    monkeypatch.setattr(cli.ctx_store, "_ui", headless)
    monkeypatch.setattr(cli.ctx_store, "runner_factory", FakeRunner)
    FakeRunner.instances.clear()
    return headless


def test_run_merges_flags_into_config(ui, tmp_path):
    result = runner.invoke(
        cli.app,
        [
            "run",
            "--bench", "unary,binary",
            "--backend", "wgpu-fusion",
            "-V", "0.18.0", "-V", "main",
            "--repetitions", "3",
            "--output-dir", str(tmp_path / "out"),
        ],
    )
    assert result.exit_code == 0, result.output
    config = FakeRunner.instances[0].config
    assert config.selection.benches == ["unary", "binary"]
    assert config.selection.backends == ["wgpu-fusion"]
    assert config.selection.versions == ["0.18.0", "main"]
    assert config.repetitions == 3
    assert ui.recorded_tables[0].rows[0][5] == "[green]success[/green]"
    assert any("Report saved to" in line for line in ui.recorded_messages)


def test_run_exits_nonzero_when_a_unit_failed(ui, tmp_path, monkeypatch):
    class FailingRunner(FakeRunner):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.statuses = [MeasurementStatus.SUCCESS, MeasurementStatus.FAILED]

    monkeypatch.setattr(cli.ctx_store, "runner_factory", FailingRunner)
    result = runner.invoke(cli.app, ["run", "-b", "unary", "-B", "wgpu", "-o", str(tmp_path / "out")])
    assert result.exit_code == 1
    assert any("1 success, 1 failed, 0 skipped" in line for line in ui.recorded_messages)


def test_run_requires_bench_and_backend(ui):
    result = runner.invoke(cli.app, ["run", "--backend", "wgpu"])
    assert result.exit_code == 2
    assert FakeRunner.instances == []


def test_run_rejects_invalid_version(ui):
    result = runner.invoke(cli.app, ["run", "-b", "unary", "-B", "wgpu", "-V", "release:not-semver"])
    assert result.exit_code == 2
    assert any(line.startswith("ERROR:") for line in ui.recorded_messages)


def test_run_uses_trigger_file(ui, tmp_path):
    trigger = tmp_path / "trigger.toml"
    trigger.write_text('[benchmark]\nbenches = ["matmul"]\nbackends = ["cuda"]\nversions = ["main"]\n')
    result = runner.invoke(cli.app, ["run", "--trigger", str(trigger), "-o", str(tmp_path / "out")])
    assert result.exit_code == 0, result.output
    selection = FakeRunner.instances[0].config.selection
    assert (selection.benches, selection.backends, selection.versions) == (["matmul"], ["cuda"], ["main"])


def test_trigger_values_equal_to_defaults_override_config_file(ui, tmp_path):
    config = tmp_path / "bench.yaml"
    config.write_text("selection:\n  versions: [main]\n  dtypes: [f16]\n")
    trigger = tmp_path / "trigger.toml"
    trigger.write_text('[benchmark]\nbenches = ["unary"]\nbackends = ["cuda"]\nversions = ["local"]\ndtypes = ["f32"]\n')
    result = runner.invoke(
        cli.app, ["run", "-c", str(config), "--trigger", str(trigger), "-o", str(tmp_path / "out")]
    )
    assert result.exit_code == 0, result.output
    selection = FakeRunner.instances[0].config.selection
    assert (selection.versions, selection.dtypes) == (["local"], ["f32"])


def test_trigger_keeps_config_values_it_does_not_set(ui, tmp_path):
    config = tmp_path / "bench.yaml"
    config.write_text("selection:\n  dtypes: [f16]\n")
    trigger = tmp_path / "trigger.toml"
    trigger.write_text('[benchmark]\nbenches = ["unary"]\nbackends = ["cuda"]\n')
    result = runner.invoke(
        cli.app, ["run", "-c", str(config), "--trigger", str(trigger), "-o", str(tmp_path / "out")]
    )
    assert result.exit_code == 0, result.output
    assert FakeRunner.instances[0].config.selection.dtypes == ["f16"]


def test_run_reads_default_config_file(ui, tmp_path):
    (tmp_path / "tensorbench.yaml").write_text(
        "selection:\n  benches: [reduce]\n  backends: [ndarray]\nparallelism: 2\n"
    )
    result = runner.invoke(cli.app, ["run", "-o", str(tmp_path / "out")])
    assert result.exit_code == 0, result.output
    config = FakeRunner.instances[0].config
    assert config.selection.benches == ["reduce"]
    assert config.parallelism == 2


def test_run_shares_report(ui, tmp_path, monkeypatch):
    client = FakeClient()
    monkeypatch.setattr(cli.ctx_store, "sharing_client_factory", lambda cfg: client)
    result = runner.invoke(cli.app, ["run", "-b", "unary", "-B", "wgpu", "-o", str(tmp_path / "out"), "--share"])
    assert result.exit_code == 0, result.output
    assert [r.run_id for r in client.shared] == ["run-cli"]


def test_run_share_failure_keeps_local_report(ui, tmp_path, monkeypatch):
    client = FakeClient(error=UploadError("server down", status=503))
    monkeypatch.setattr(cli.ctx_store, "sharing_client_factory", lambda cfg: client)
    result = runner.invoke(cli.app, ["run", "-b", "unary", "-B", "wgpu", "-o", str(tmp_path / "out"), "--share"])
    assert result.exit_code == 1
    assert (tmp_path / "out" / "run-cli" / "report.json").exists()
    assert any("tbench share" in line for line in ui.recorded_messages)


def test_share_command_uploads_saved_report(ui, tmp_path, monkeypatch):
    saved = make_report([MeasurementStatus.SUCCESS], tmp_path / "out")
    client = FakeClient()
    monkeypatch.setattr(cli.ctx_store, "sharing_client_factory", lambda cfg: client)
    result = runner.invoke(cli.app, ["share", str(saved.local_path.parent)])
    assert result.exit_code == 0, result.output
    assert client.shared[0].run_id == "run-cli"
    assert client.shared[0].counts() == {"success": 1, "failed": 0, "skipped": 0}


def test_share_command_auth_failure(ui, tmp_path, monkeypatch):
    saved = make_report([MeasurementStatus.SUCCESS], tmp_path / "out")
    client = FakeClient(error=AuthError("denied", reason=AuthFailure.DENIED))
    monkeypatch.setattr(cli.ctx_store, "sharing_client_factory", lambda cfg: client)
    result = runner.invoke(cli.app, ["share", str(saved.local_path)])
    assert result.exit_code == 1


def test_share_command_missing_report(ui, tmp_path):
    result = runner.invoke(cli.app, ["share", str(tmp_path / "nope.json")])
    assert result.exit_code == 2


def test_list_shows_suites_and_backends(ui, monkeypatch, workload_factory):
    registry = WorkloadRegistry([workload_factory("matmul", cases=["small", "large"])], discover=False)
    monkeypatch.setattr(cli.ctx_store, "registry_factory", lambda: registry)
    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 0, result.output
    suites, backends = ui.recorded_tables
    assert suites.rows == [["matmul", "small, large", ""]]
    assert "wgpu-fusion" in [row[0] for row in backends.rows]


def test_auth_status_without_token(ui, monkeypatch):
    monkeypatch.setattr(cli.ctx_store, "sharing_client_factory", lambda cfg: FakeClient())
    result = runner.invoke(cli.app, ["auth", "status"])
    assert result.exit_code == 1


def test_auth_logout_without_token(ui, monkeypatch):
    monkeypatch.setattr(cli.ctx_store, "sharing_client_factory", lambda cfg: FakeClient())
    result = runner.invoke(cli.app, ["auth", "logout"])
    assert result.exit_code == 0
    assert "INFO: No stored token." in ui.recorded_messages


def test_run_share_with_invalid_server_url(ui, tmp_path, monkeypatch):
    monkeypatch.setenv("TB_SERVER_URL", "ftp://bench.example")
    result = runner.invoke(cli.app, ["run", "-b", "unary", "-B", "wgpu", "-o", str(tmp_path / "out"), "--share"])
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert any("Server URL must be an http(s) URL" in line for line in ui.recorded_messages)


def test_auth_status_with_invalid_server_url(ui, monkeypatch):
    monkeypatch.setenv("TB_SERVER_URL", "not-a-url")
    result = runner.invoke(cli.app, ["auth", "status"])
    assert result.exit_code == 2
    assert isinstance(result.exception, SystemExit)
