"""Thin wrapper over the git CLI used for resolving and checking out sources."""

from __future__ import annotations

import logging
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

from tb_common.errors import ResolveError


logger = logging.getLogger(__name__)

CommandRunner = Callable[..., subprocess.CompletedProcess]


@dataclass
class GitRemote:
    """Query and mirror a remote repository.

    The bare mirror under ``mirror_dir`` is fetched at most once per instance
    (one instance per run), so commits pushed mid-run are not picked up.
    Failing git commands raise ``ResolveError``; lookups return None only
    when git answered and the ref is absent.
    """

    url: str
    mirror_dir: Path
    timeout_seconds: float = 120.0
    runner: CommandRunner = subprocess.run
    _mirror_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _mirror_ready: bool = field(default=False, init=False, repr=False)

    def git(self, args: Sequence[str], cwd: Path | None = None) -> subprocess.CompletedProcess:
        cmd = ["git", *args]
        logger.debug("Executing %s", " ".join(cmd))
        return self.runner(
            cmd,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=self.timeout_seconds,
            check=False,
        )

    def ls_remote(self, *refs: str) -> dict[str, str]:
        """Return ``{ref: hash}`` for advertised refs matching ``refs``."""
        result = self.git(["ls-remote", self.url, *refs])
        if result.returncode != 0:
            raise _git_failure("ls-remote", self.url, result)
        return parse_ls_remote(result.stdout)

    def resolve_branch(self, name: str) -> str | None:
        """Return the commit a branch (or tag) currently points to."""
        refs = self.ls_remote(
            f"refs/heads/{name}", f"refs/tags/{name}", f"refs/tags/{name}^{{}}"
        )
        for ref in (f"refs/heads/{name}", f"refs/tags/{name}^{{}}", f"refs/tags/{name}"):
            if ref in refs:
                return refs[ref]
        return None

    def resolve_commit(self, commit: str) -> str | None:
        """Expand a (possibly short) commit hash to the full hash."""
        for sha in self.ls_remote().values():
            if sha.startswith(commit):
                return sha
        self.ensure_mirror()
        result = self.git(
            ["--git-dir", str(self.mirror_dir), "rev-parse", "--verify", "--quiet", f"{commit}^{{commit}}"]
        )
        if result.returncode != 0:
            return None
        sha = result.stdout.strip()
        return sha or None

    def ensure_mirror(self) -> None:
        with self._mirror_lock:
            if self._mirror_ready:
                return
            if (self.mirror_dir / "HEAD").exists():
                result = self.git(["--git-dir", str(self.mirror_dir), "fetch", "--prune", "origin"])
            else:
                self.mirror_dir.parent.mkdir(parents=True, exist_ok=True)
                result = self.git(
                    ["clone", "--bare", "--filter=blob:none", self.url, str(self.mirror_dir)]
                )
            if result.returncode != 0:
                raise _git_failure("mirror", self.url, result)
            self._mirror_ready = True


def parse_ls_remote(output: str) -> dict[str, str]:
    refs: dict[str, str] = {}
    for line in output.splitlines():
        parts = line.strip().split("\t")
        if len(parts) != 2:
            continue
        sha, ref = parts
        refs[ref] = sha
    return refs


def local_head(path: Path, runner: CommandRunner = subprocess.run) -> tuple[str, bool] | None:
    """Return ``(HEAD hash, dirty)`` for a local checkout, or None if not a git tree."""
    try:
        head = runner(
            ["git", "-C", str(path), "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            timeout=30,
            check=False,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    if head.returncode != 0:
        return None
    status = runner(
        ["git", "-C", str(path), "status", "--porcelain", "--untracked-files=no"],
        capture_output=True,
        text=True,
        timeout=30,
        check=False,
    )
    dirty = status.returncode == 0 and bool(status.stdout.strip())
    return head.stdout.strip(), dirty


def _git_failure(operation: str, url: str, result: subprocess.CompletedProcess) -> ResolveError:
    stderr = (result.stderr or "").strip()
    logger.error("git %s %s failed (rc=%s): %s", operation, url, result.returncode, stderr)
    return ResolveError(
        f"git {operation} failed for {url}: {stderr or f'exit code {result.returncode}'}",
        context={"remote": url, "returncode": result.returncode, "stderr": stderr},
    )
