import pytest

from tb_runner import system_info
from tb_runner.system_info import EnvironmentInfo, collect_environment

pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]


def fake_run(cmd, timeout=5.0):
    outputs = {
        "nvidia-smi": "NVIDIA GeForce RTX 4090, 550.54.14\nNVIDIA GeForce RTX 4090, 550.54.14",
        "rustc": "rustc 1.80.0 (051478957 2024-07-21)",
        "cargo": "cargo 1.80.0 (376290515 2024-07-16)",
    }
    return outputs.get(cmd[0], "")


def test_collect_environment_with_nvidia(monkeypatch):
    monkeypatch.setattr(system_info.shutil, "which", lambda name: "/usr/bin/nvidia-smi" if name == "nvidia-smi" else None)
    env = collect_environment(run=fake_run)
    assert env.gpus == ["NVIDIA GeForce RTX 4090", "NVIDIA GeForce RTX 4090"]
    assert env.toolchain == {
        "rustc": "rustc 1.80.0 (051478957 2024-07-21)",
        "cargo": "cargo 1.80.0 (376290515 2024-07-16)",
        "gpu_driver": "550.54.14",
    }
    assert env.cpu_count and env.cpu_count > 0
    assert env.memory_total_bytes and env.memory_total_bytes > 0
    assert env.host


def test_collect_environment_from_lspci(monkeypatch):
    monkeypatch.setattr(system_info.shutil, "which", lambda name: "/usr/bin/lspci" if name == "lspci" else None)

    def run(cmd, timeout=5.0):
        if cmd[0] == "lspci":
            return (
                '00:02.0 "VGA compatible controller" "Intel Corporation" "Iris Xe Graphics" -r01 "" ""\n'
                '00:1f.3 "Audio device" "Intel Corporation" "Tiger Lake-LP Smart Sound" -r20 "" ""'
            )
        return ""

    env = collect_environment(run=run)
    assert env.gpus == ["Intel Corporation Iris Xe Graphics"]
    assert env.toolchain == {}


def test_environment_round_trip():
    env = EnvironmentInfo(host="h", timestamp="t", cpus=["cpu"], cpu_count=8, toolchain={"rustc": "1.80"})
    assert EnvironmentInfo.from_dict(env.to_dict()) == env
    assert env.to_dict()["cpuCount"] == 8
