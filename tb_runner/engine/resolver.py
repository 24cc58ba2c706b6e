"""Resolve version specifiers into concrete, buildable sources.

One resolution function per specifier variant; the dispatch table is checked
against the ``VersionSpec`` union at import time so a new variant cannot be
added without a resolver.
"""

from __future__ import annotations

import hashlib
import logging
import subprocess
import threading
from pathlib import Path
from typing import Callable, get_args

from tb_common.errors import PathNotFound, RefNotFound, ResolveError, UnknownVersion
from tb_runner.engine.git import GitRemote, local_head
from tb_runner.models.version import (
    Branch,
    Commit,
    Local,
    Published,
    ResolvedSource,
    VersionSpec,
)
from tb_runner.services.release_index import ReleaseIndex


logger = logging.getLogger(__name__)


class VersionResolver:
    """Memoizing resolver bound to a single orchestration run.

    Identical specs return the identical ``ResolvedSource`` for the lifetime
    of the instance; failures are remembered as well.
    """

    def __init__(
        self,
        *,
        remote: GitRemote,
        releases: ReleaseIndex | None = None,
        crate_name: str = "burn",
        local_dir: Path | None = None,
    ) -> None:
        self.remote = remote
        self.releases = releases
        self.crate_name = crate_name
        self.local_dir = local_dir
        self._lock = threading.Lock()
        self._key_locks: dict[tuple, threading.Lock] = {}
        self._resolved: dict[tuple, ResolvedSource | ResolveError] = {}

    def resolve(
        self, spec: VersionSpec, default_local_dir: Path | None = None
    ) -> ResolvedSource:
        key = (spec, default_local_dir)
        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())
        with key_lock:
            cached = self._resolved.get(key)
            if cached is None:
                cached = self._resolve_uncached(spec, default_local_dir)
                self._resolved[key] = cached
        if isinstance(cached, ResolveError):
            raise cached
        return cached

    def _resolve_uncached(
        self, spec: VersionSpec, default_local_dir: Path | None
    ) -> ResolvedSource | ResolveError:
        handler = _RESOLVERS[type(spec)]
        try:
            source = handler(self, spec, default_local_dir)
        except ResolveError as exc:
            logger.error("Failed to resolve %s: %s", spec.label, exc)
            return exc
        except (OSError, subprocess.SubprocessError) as exc:
            logger.error("git failed while resolving %s: %s", spec.label, exc)
            return ResolveError(
                f"Could not resolve {spec.label}: {exc}",
                context={"spec": spec.label, "kind": spec.kind},
                cause=exc,
            )
        logger.info(
            "Resolved %s %s -> %s", spec.kind.value, spec.label, source.identity[:12]
        )
        return source


def _resolve_published(
    resolver: VersionResolver, spec: Published, _default: Path | None
) -> ResolvedSource:
    if resolver.releases is None:
        raise UnknownVersion(
            "No release index configured", context={"version": spec.version}
        )
    info = resolver.releases.lookup(resolver.crate_name, spec.version)
    if info is None or info.yanked:
        raise UnknownVersion(
            f"Unknown release {resolver.crate_name} {spec.version}",
            context={"crate": resolver.crate_name, "version": spec.version},
        )
    tag = f"v{info.version}"
    return ResolvedSource(
        spec=spec,
        location=resolver.remote.url,
        revision=tag,
        identity=info.checksum or tag,
    )


def _resolve_branch(
    resolver: VersionResolver, spec: Branch, _default: Path | None
) -> ResolvedSource:
    sha = resolver.remote.resolve_branch(spec.name)
    if not sha:
        raise RefNotFound(
            f"Branch {spec.name!r} not found on {resolver.remote.url}",
            context={"branch": spec.name, "remote": resolver.remote.url},
        )
    return ResolvedSource(spec=spec, location=resolver.remote.url, revision=sha, identity=sha)


def _resolve_commit(
    resolver: VersionResolver, spec: Commit, _default: Path | None
) -> ResolvedSource:
    sha = resolver.remote.resolve_commit(spec.hash)
    if not sha:
        raise RefNotFound(
            f"Commit {spec.hash} not found on {resolver.remote.url}",
            context={"commit": spec.hash, "remote": resolver.remote.url},
        )
    return ResolvedSource(spec=spec, location=resolver.remote.url, revision=sha, identity=sha)


def _resolve_local(
    resolver: VersionResolver, spec: Local, default_local_dir: Path | None
) -> ResolvedSource:
    candidate = spec.path or default_local_dir or resolver.local_dir
    if candidate is None:
        raise PathNotFound(
            "No local source directory configured (set local_dir or TB_LOCAL_DIR)",
            context={"spec": spec.label},
        )
    path = Path(candidate).expanduser().resolve()
    if not path.is_dir():
        raise PathNotFound(
            f"Local source directory not found: {path}", context={"path": path}
        )
    head = local_head(path, runner=resolver.remote.runner)
    if head is None:
        digest = hashlib.sha256(str(path).encode("utf-8")).hexdigest()
        return ResolvedSource(spec=spec, location=str(path), revision="", identity=f"path-{digest[:16]}")
    sha, dirty = head
    return ResolvedSource(
        spec=spec,
        location=str(path),
        revision=sha,
        identity=f"{sha}-dirty" if dirty else sha,
    )


_RESOLVERS: dict[type, Callable[[VersionResolver, VersionSpec, Path | None], ResolvedSource]] = {
    Published: _resolve_published,
    Branch: _resolve_branch,
    Commit: _resolve_commit,
    Local: _resolve_local,
}

if set(_RESOLVERS) != set(get_args(VersionSpec)):  # pragma: no cover
    raise RuntimeError("Every VersionSpec variant needs a resolver")
