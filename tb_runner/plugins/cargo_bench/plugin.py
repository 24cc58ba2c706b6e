"""
Cargo bench suite implementation.

Each bench target of the bench crate (``cargo bench --bench <name>``) is one
suite. Benches persist their own result records as JSON files and append the
file path to ``benchmark_results.txt`` in the results directory; the newest
record written during the call provides the sample.
"""

import json
import logging
import os
import subprocess
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from tb_common.errors import WorkloadError
from tb_runner.catalog import DEFAULT_BENCHES
from tb_runner.models.run import ArtifactHandle
from tb_runner.plugin_system.interface import Workload

logger = logging.getLogger(__name__)

RESULTS_INDEX = "benchmark_results.txt"
DEFAULT_RESULTS_DIR = Path.home() / ".cache" / "burn" / "burnbench"

# Benches sharing a results directory must not interleave their index writes.
_INDEX_LOCKS: Dict[str, threading.Lock] = {}
_INDEX_LOCKS_GUARD = threading.Lock()


def _index_lock(results_dir: Path) -> threading.Lock:
    with _INDEX_LOCKS_GUARD:
        return _INDEX_LOCKS.setdefault(str(results_dir.resolve()), threading.Lock())


class CargoBenchConfig(BaseModel):
    """Configuration for cargo bench suites."""

    results_dir: Path = Field(default=DEFAULT_RESULTS_DIR, description="Directory the benches write records to")
    timeout: int = Field(default=1800, gt=0, description="Timeout in seconds for one cargo bench call")
    extra_args: List[str] = Field(default_factory=list, description="Arguments passed after '--' to the bench binary")

    model_config = {"extra": "ignore"}


def read_index(results_dir: Path) -> List[Path]:
    index = results_dir / RESULTS_INDEX
    if not index.exists():
        return []
    return [Path(line.strip()) for line in index.read_text().splitlines() if line.strip()]


def record_mean_seconds(record_path: Path) -> Optional[float]:
    """Return the mean duration of a record in seconds (records store microseconds)."""
    try:
        data = json.loads(record_path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Unreadable bench record %s: %s", record_path, exc)
        return None
    mean = data.get("mean") if isinstance(data, dict) else None
    if mean is None:
        return None
    return float(mean) / 1_000_000


class CargoBenchWorkload(Workload):
    """One bench target run through cargo."""

    def __init__(self, bench: str, config: Optional[CargoBenchConfig] = None, runner=subprocess.run):
        self._bench = bench
        self.config = config or CargoBenchConfig()
        self._runner = runner

    @property
    def name(self) -> str:
        return self._bench

    @property
    def description(self) -> str:
        return f"cargo bench --bench {self._bench}"

    def get_required_local_tools(self) -> List[str]:
        return ["cargo"]

    def _build_command(self, case_id: str, artifact: ArtifactHandle) -> List[str]:
        cmd = ["cargo", "bench", "--bench", case_id]
        if artifact.features:
            cmd.extend(["--features", ",".join(artifact.features)])
        if self.config.extra_args:
            cmd.append("--")
            cmd.extend(self.config.extra_args)
        return cmd

    def run(self, case_id: str, backend: str, dtype: str, artifact: ArtifactHandle) -> Optional[float]:
        results_dir = self.config.results_dir
        cmd = self._build_command(case_id, artifact)
        env = {**os.environ, **dict(artifact.env)}
        with _index_lock(results_dir):
            before = len(read_index(results_dir))
            logger.info("Running command: %s", " ".join(cmd))
            started = time.perf_counter()
            try:
                result = self._runner(
                    cmd,
                    cwd=str(artifact.workdir),
                    env=env,
                    capture_output=True,
                    text=True,
                    timeout=self.config.timeout,
                    check=False,
                )
            except subprocess.TimeoutExpired as exc:
                raise WorkloadError(
                    f"cargo bench {case_id} timed out after {self.config.timeout}s",
                    context={"bench": case_id, "backend": backend, "dtype": dtype},
                    cause=exc,
                ) from exc
            elapsed = time.perf_counter() - started
            if result.returncode != 0:
                tail = "\n".join((result.stderr or "").strip().splitlines()[-20:])
                raise WorkloadError(
                    f"cargo bench {case_id} failed with return code {result.returncode}",
                    context={"bench": case_id, "backend": backend, "dtype": dtype, "stderr": tail},
                )
            written = read_index(results_dir)[before:]

        for record_path in reversed(written):
            mean = record_mean_seconds(record_path)
            if mean is not None:
                return mean
        logger.debug("No result record for %s; using wall clock (%.3fs)", case_id, elapsed)
        return elapsed


def get_plugins(config: Optional[CargoBenchConfig] = None) -> List[Workload]:
    """Return one workload per known bench target."""
    return [CargoBenchWorkload(bench, config) for bench in DEFAULT_BENCHES]
