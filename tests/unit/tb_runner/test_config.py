from pathlib import Path

import pytest

from tb_common.errors import ConfigurationError
from tb_runner.models.config import BenchmarkConfig, SelectionConfig, TriggerFile
from tb_runner.models.version import Branch, Local, Published

pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]


def test_defaults():
    cfg = BenchmarkConfig()
    assert cfg.repetitions == 10
    assert cfg.warmup == 1
    assert cfg.parallelism == 1
    assert cfg.selection.versions == ["local"]
    assert cfg.selection.dtypes == ["f32"]
    assert cfg.share.enabled is False


def test_selection_splits_and_dedupes():
    selection = SelectionConfig(benches="unary, matmul,unary", backends=["wgpu", "wgpu"])
    assert selection.benches == ["unary", "matmul"]
    assert selection.backends == ["wgpu"]


def test_selection_rejects_unknown_dtype():
    with pytest.raises(ValueError):
        SelectionConfig(dtypes=["f64"])


def test_version_specs():
    selection = SelectionConfig(versions=["0.18.0", "main", "local"])
    assert selection.version_specs() == [Published("0.18.0"), Branch("main"), Local()]


def test_invalid_values_raise_configuration_error():
    with pytest.raises(ConfigurationError):
        BenchmarkConfig.from_dict({"repetitions": 0})
    with pytest.raises(ConfigurationError):
        BenchmarkConfig.from_dict({"selection": {"versions": ["release:nope"]}})


def test_load_yaml(tmp_path: Path):
    path = tmp_path / "tensorbench.yaml"
    path.write_text(
        "repetitions: 3\n"
        "selection:\n"
        "  benches: [unary]\n"
        "  backends: [wgpu-fusion]\n"
        "backends:\n"
        "  my-gpu:\n"
        "    dtypes: [f32, f16]\n"
        "    features: [wgpu, fusion]\n"
    )
    cfg = BenchmarkConfig.load(path)
    assert cfg.repetitions == 3
    assert cfg.selection.benches == ["unary"]
    spec = cfg.backend_specs()["my-gpu"]
    assert spec.exclusive_hardware is True
    assert spec.cargo_features("f16") == ("wgpu", "fusion", "f16")


def test_load_missing_and_invalid(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        BenchmarkConfig.load(tmp_path / "missing.yaml")
    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError):
        BenchmarkConfig.load(bad)


def test_env_overrides(tmp_path: Path):
    env = {
        "TB_LOCAL_DIR": str(tmp_path),
        "TB_REPETITIONS": "5",
        "TB_BACKENDS": "wgpu,ndarray",
        "TB_SHARE": "yes",
        "TB_AUTH_CLIENT_ID": "client-1",
    }
    cfg = BenchmarkConfig().with_env_overrides(env)
    assert cfg.local_dir == tmp_path
    assert cfg.repetitions == 5
    assert cfg.selection.backends == ["wgpu", "ndarray"]
    assert cfg.share.enabled is True
    assert cfg.share.client_id == "client-1"


def test_merged_keeps_untouched_selection():
    cfg = BenchmarkConfig(selection=SelectionConfig(benches=["unary"], backends=["wgpu"]))
    merged = cfg.merged({"parallelism": 2}, selection={"dtypes": ["f16"]})
    assert merged.parallelism == 2
    assert merged.selection.benches == ["unary"]
    assert merged.selection.dtypes == ["f16"]


def test_trigger_file(tmp_path: Path):
    path = tmp_path / "trigger.toml"
    path.write_text(
        "[environment]\n"
        'gcp_gpu_attached = true\n'
        "\n"
        "[benchmark]\n"
        'benches = ["unary", "matmul"]\n'
        'backends = ["wgpu-fusion"]\n'
        'versions = ["main"]\n'
        'dtypes = ["f32"]\n'
    )
    trigger = TriggerFile.load(path)
    assert trigger.environment == {"gcp_gpu_attached": True}
    assert trigger.selection.benches == ["unary", "matmul"]
    assert trigger.selection.version_specs() == [Branch("main")]


def test_trigger_file_errors(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        TriggerFile.load(tmp_path / "missing.toml")
    bad = tmp_path / "bad.toml"
    bad.write_text("[benchmark\n")
    with pytest.raises(ConfigurationError):
        TriggerFile.load(bad)
