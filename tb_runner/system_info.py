"""Environment metadata captured once per run.

Collects OS, CPU, memory and GPU details plus the toolchain versions that
influence benchmark timings (rustc, cargo, GPU driver).
"""

from __future__ import annotations

import platform
import shlex
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import psutil


GPU_PCI_CLASSES = ("VGA compatible controller", "3D controller", "Display controller")


def _run(cmd: list[str], timeout: float = 5.0) -> str:
    """Run a command safely, returning stdout or empty string on failure."""
    try:
        result = subprocess.run(
            cmd, check=False, capture_output=True, text=True, timeout=timeout
        )
        if result.returncode != 0:
            return ""
        return result.stdout.strip()
    except (OSError, subprocess.SubprocessError):
        return ""


def _read_os_release() -> dict[str, str]:
    """Parse /etc/os-release when available."""
    data: dict[str, str] = {}
    path = Path("/etc/os-release")
    if not path.exists():
        return data
    for line in path.read_text().splitlines():
        if "=" not in line:
            continue
        key, val = line.split("=", 1)
        data[key.strip()] = val.strip().strip('"')
    return data


@dataclass(frozen=True)
class EnvironmentInfo:
    host: str
    timestamp: str
    os: dict[str, Any] = field(default_factory=dict)
    cpus: list[str] = field(default_factory=list)
    cpu_count: int | None = None
    memory_total_bytes: int | None = None
    gpus: list[str] = field(default_factory=list)
    toolchain: dict[str, str] = field(default_factory=dict)
    python: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "timestamp": self.timestamp,
            "os": dict(self.os),
            "cpus": list(self.cpus),
            "cpuCount": self.cpu_count,
            "memoryTotalBytes": self.memory_total_bytes,
            "gpus": list(self.gpus),
            "toolchain": dict(self.toolchain),
            "python": self.python,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EnvironmentInfo":
        return cls(
            host=data.get("host", ""),
            timestamp=data.get("timestamp", ""),
            os=dict(data.get("os") or {}),
            cpus=list(data.get("cpus") or []),
            cpu_count=data.get("cpuCount"),
            memory_total_bytes=data.get("memoryTotalBytes"),
            gpus=list(data.get("gpus") or []),
            toolchain=dict(data.get("toolchain") or {}),
            python=data.get("python", ""),
        )


def _collect_cpus(run: Callable[[list[str]], str]) -> list[str]:
    names: list[str] = []
    cpuinfo = Path("/proc/cpuinfo")
    if cpuinfo.exists():
        for line in cpuinfo.read_text(errors="replace").splitlines():
            key, sep, value = line.partition(":")
            if sep and key.strip() == "model name" and value.strip() not in names:
                names.append(value.strip())
    if not names and sys.platform == "darwin":
        brand = run(["sysctl", "-n", "machdep.cpu.brand_string"])
        if brand:
            names.append(brand)
    if not names and platform.processor():
        names.append(platform.processor())
    return names


def _collect_gpus(run: Callable[[list[str]], str]) -> tuple[list[str], str | None]:
    """Return GPU names and the NVIDIA driver version when available."""
    if shutil.which("nvidia-smi"):
        raw = run(["nvidia-smi", "--query-gpu=name,driver_version", "--format=csv,noheader"])
        gpus: list[str] = []
        driver: str | None = None
        for line in raw.splitlines():
            name, _, version = line.partition(",")
            if name.strip():
                gpus.append(name.strip())
                driver = driver or version.strip() or None
        if gpus:
            return gpus, driver
    if shutil.which("lspci"):
        gpus = []
        for line in run(["lspci", "-mm"]).splitlines():
            try:
                parts = shlex.split(line)
            except ValueError:
                continue
            # slot, class, vendor, device, then optional flags
            if len(parts) < 4 or parts[1] not in GPU_PCI_CLASSES:
                continue
            gpus.append(f"{parts[2]} {parts[3]}".strip())
        return gpus, None
    return [], None


def _tool_version(run: Callable[[list[str]], str], cmd: list[str]) -> str | None:
    out = run(cmd)
    return out.splitlines()[0] if out else None


def collect_environment(run: Callable[[list[str]], str] = _run) -> EnvironmentInfo:
    """Collect environment metadata; missing probes are left empty."""
    uname = platform.uname()
    os_release = _read_os_release()
    gpus, driver = _collect_gpus(run)
    toolchain = {
        name: version
        for name, version in (
            ("rustc", _tool_version(run, ["rustc", "--version"])),
            ("cargo", _tool_version(run, ["cargo", "--version"])),
            ("gpu_driver", driver),
        )
        if version
    }
    try:
        memory_total = int(psutil.virtual_memory().total)
    except (OSError, RuntimeError):
        memory_total = None
    return EnvironmentInfo(
        host=uname.node or platform.node() or "",
        timestamp=datetime.now(timezone.utc).isoformat(),
        os={
            "system": uname.system,
            "release": uname.release,
            "machine": uname.machine,
            "name": os_release.get("PRETTY_NAME") or os_release.get("NAME") or "",
        },
        cpus=_collect_cpus(run),
        cpu_count=psutil.cpu_count(logical=True),
        memory_total_bytes=memory_total,
        gpus=gpus,
        toolchain=toolchain,
        python=platform.python_version(),
    )
