"""Run-scoped cache of built artifacts.

Each (resolved source, backend, dtype) key is built at most once per run.
Concurrent requests for a key wait for the first build and share its
outcome; failed builds stay failed until the cache is closed.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Protocol

from tb_common.errors import BuildError
from tb_runner.catalog import BackendSpec
from tb_runner.models.run import ArtifactHandle
from tb_runner.models.version import ResolvedSource


logger = logging.getLogger(__name__)

BuildKey = tuple[tuple[str, str, str], str, str]


class Builder(Protocol):
    def build(
        self, source: ResolvedSource, backend: BackendSpec, dtype: str
    ) -> ArtifactHandle:
        """Produce an artifact or raise BuildError."""
        ...


@dataclass
class _Entry:
    done: threading.Event = field(default_factory=threading.Event)
    artifact: ArtifactHandle | None = None
    error: BuildError | None = None


class BuildCache:
    """Keyed store of artifacts bound to one orchestration run."""

    def __init__(self, builder: Builder) -> None:
        self._builder = builder
        self._lock = threading.Lock()
        self._entries: dict[BuildKey, _Entry] = {}
        self._build_counts: Counter[BuildKey] = Counter()
        self._closed = False

    @staticmethod
    def key_for(source: ResolvedSource, backend: str, dtype: str) -> BuildKey:
        return (source.key, backend, dtype)

    def get_or_build(
        self, source: ResolvedSource, backend: BackendSpec, dtype: str
    ) -> ArtifactHandle:
        key = self.key_for(source, backend.name, dtype)
        with self._lock:
            if self._closed:
                raise RuntimeError("BuildCache is closed")
            entry = self._entries.get(key)
            owner = entry is None
            if owner:
                entry = _Entry()
                self._entries[key] = entry
                self._build_counts[key] += 1

        if owner:
            self._build(entry, source, backend, dtype)
        else:
            logger.debug("Waiting for build of %s/%s/%s", source.label, backend.name, dtype)
            entry.done.wait()

        if entry.error is not None:
            raise entry.error
        if entry.artifact is None:  # pragma: no cover - guarded by _build
            raise BuildError("Build finished without an artifact", context={"key": key})
        return entry.artifact

    def _build(
        self, entry: _Entry, source: ResolvedSource, backend: BackendSpec, dtype: str
    ) -> None:
        logger.info("Building %s for %s/%s", source.label, backend.name, dtype)
        started = time.perf_counter()
        try:
            entry.artifact = self._builder.build(source, backend, dtype)
            logger.info(
                "Built %s for %s/%s in %.1fs",
                source.label,
                backend.name,
                dtype,
                time.perf_counter() - started,
            )
        except BuildError as exc:
            logger.error("Build of %s for %s/%s failed: %s", source.label, backend.name, dtype, exc)
            entry.error = exc
        except Exception as exc:
            logger.exception("Unexpected build failure for %s", source.label)
            entry.error = BuildError(
                f"Build crashed: {exc}",
                stderr_excerpt=str(exc),
                context={"version": source.label, "backend": backend.name, "dtype": dtype},
                cause=exc,
            )
        finally:
            entry.done.set()

    def build_count(self, source: ResolvedSource, backend: str, dtype: str) -> int:
        with self._lock:
            return self._build_counts[self.key_for(source, backend, dtype)]

    def stats(self) -> dict[str, int]:
        with self._lock:
            finished = [e for e in self._entries.values() if e.done.is_set()]
            return {
                "keys": len(self._entries),
                "builds": sum(self._build_counts.values()),
                "failed": sum(1 for e in finished if e.error is not None),
            }

    def close(self) -> None:
        """Drop all entries; the cache cannot be used afterwards."""
        with self._lock:
            self._closed = True
            self._entries.clear()

    def __enter__(self) -> "BuildCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
