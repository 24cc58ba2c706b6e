"""Cargo-based builder producing benchmark artifacts for a resolved source."""

from __future__ import annotations

import logging
import os
import re
import subprocess
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from tb_common.errors import BuildError
from tb_runner.catalog import BackendSpec
from tb_runner.models.run import ArtifactHandle
from tb_runner.models.version import ResolvedSource, SourceKind


logger = logging.getLogger(__name__)

EXCERPT_LINES = 40

CommandRunner = Callable[..., subprocess.CompletedProcess]


def stderr_excerpt(text: str | bytes | None, lines: int = EXCERPT_LINES) -> str:
    """Return the last ``lines`` lines of a captured stream."""
    if not text:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return "\n".join(text.strip().splitlines()[-lines:])


def _slug(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", value)


class CargoBuilder:
    """Materialize a checkout for a source and compile the bench crate.

    Git-backed sources are cloned once per identity under ``checkout_dir``;
    local sources are built in place. Each (backend, dtype) variant gets its
    own cargo target directory so variants never invalidate each other.
    """

    def __init__(
        self,
        *,
        checkout_dir: Path,
        bench_crate: str = "backend-comparison",
        timeout_seconds: float = 3600.0,
        runner: CommandRunner = subprocess.run,
    ) -> None:
        self.checkout_dir = checkout_dir
        self.bench_crate = bench_crate
        self.timeout_seconds = timeout_seconds
        self.runner = runner
        self._lock = threading.Lock()
        self._checkout_locks: dict[str, threading.Lock] = {}

    def build(self, source: ResolvedSource, backend: BackendSpec, dtype: str) -> ArtifactHandle:
        checkout = self.checkout(source)
        workdir = checkout / self.bench_crate if (checkout / self.bench_crate).is_dir() else checkout
        features = backend.cargo_features(dtype)
        target_dir = checkout / "target" / "tensorbench" / _slug(f"{backend.name}-{dtype}")
        env = (("CARGO_TARGET_DIR", str(target_dir)),)
        cmd = [
            "cargo",
            "build",
            "--release",
            "--benches",
            "--features",
            ",".join(features),
        ]
        started = time.perf_counter()
        self._run(cmd, cwd=workdir, env=dict(env), what=f"cargo build ({backend.name}/{dtype})", source=source)
        return ArtifactHandle(
            source=source,
            backend=backend.name,
            dtype=dtype,
            workdir=workdir,
            features=features,
            env=env,
            built_at=datetime.now(timezone.utc),
            build_seconds=time.perf_counter() - started,
        )

    def checkout(self, source: ResolvedSource) -> Path:
        """Return a directory holding the source at its pinned revision."""
        if source.kind is SourceKind.LOCAL:
            return Path(source.location)
        dest = self.checkout_dir / _slug(source.identity[:24])
        with self._lock:
            lock = self._checkout_locks.setdefault(str(dest), threading.Lock())
        with lock:
            if not (dest / ".git").exists():
                dest.parent.mkdir(parents=True, exist_ok=True)
                self._run(
                    ["git", "clone", "--no-checkout", source.location, str(dest)],
                    cwd=None,
                    what="git clone",
                    source=source,
                )
            self._run(
                ["git", "-C", str(dest), "checkout", "--force", "--detach", source.revision],
                cwd=None,
                what="git checkout",
                source=source,
            )
        return dest

    def _run(
        self,
        cmd: list[str],
        *,
        cwd: Path | None,
        what: str,
        source: ResolvedSource,
        env: dict[str, str] | None = None,
    ) -> subprocess.CompletedProcess:
        context = {"version": source.label, "command": " ".join(cmd), "cwd": cwd}
        logger.debug("Executing %s", " ".join(cmd))
        try:
            result = self.runner(
                cmd,
                cwd=str(cwd) if cwd else None,
                env={**os.environ, **env} if env else None,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise BuildError(
                f"{what} timed out after {self.timeout_seconds:.0f}s",
                stderr_excerpt=stderr_excerpt(exc.stderr),
                context=context,
                cause=exc,
            ) from exc
        except OSError as exc:
            raise BuildError(
                f"{what} could not be started: {exc}",
                stderr_excerpt=str(exc),
                context=context,
                cause=exc,
            ) from exc
        if result.returncode != 0:
            raise BuildError(
                f"{what} failed with exit code {result.returncode}",
                stderr_excerpt=stderr_excerpt(result.stderr),
                context={**context, "returncode": result.returncode},
            )
        return result
