"""Run matrix units, artifacts and measurements."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from tb_runner.models.version import ResolvedSource, VersionSpec, format_version_spec


class MeasurementStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class TimingMethod(str, Enum):
    """How the samples of a measurement were timed."""

    SYSTEM = "system"  # wall clock around execution and sync
    DEVICE = "device"  # timestamps reported by the hardware


SKIP_TIMEOUT = "timeout"
SKIP_INTERRUPTED = "interrupted"
SKIP_UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class RunUnit:
    """One executable measurement of the run matrix."""

    bench_id: str
    backend_id: str
    dtype: str
    version: VersionSpec
    case_id: str = ""
    index: int = 0

    @property
    def case(self) -> str:
        return self.case_id or self.bench_id

    @property
    def lane(self) -> tuple[VersionSpec, str]:
        """Units sharing a lane share a (version, backend) pair."""
        return (self.version, self.backend_id)

    @property
    def key(self) -> str:
        """Unique per unit; the version part keeps its kind prefix (``branch:main``)."""
        return "/".join(
            [format_version_spec(self.version), self.backend_id, self.bench_id, self.case, self.dtype]
        )

    def describe(self) -> dict[str, Any]:
        return {
            "bench": self.bench_id,
            "case": self.case,
            "backend": self.backend_id,
            "dtype": self.dtype,
            "version": self.version.label,
        }


@dataclass(frozen=True)
class ArtifactHandle:
    """A built variant ready to run benchmark cases."""

    source: ResolvedSource
    backend: str
    dtype: str
    workdir: Path
    features: tuple[str, ...] = ()
    env: tuple[tuple[str, str], ...] = ()
    built_at: datetime | None = None
    build_seconds: float = 0.0

    @property
    def key(self) -> tuple[tuple[str, str, str], str, str]:
        return (self.source.key, self.backend, self.dtype)


@dataclass
class Measurement:
    """Result of executing one run unit.

    ``wall_time_samples`` only holds measured repetitions; warm-up samples are
    kept apart in ``warmup_samples`` and never enter statistics.
    """

    run_unit: RunUnit
    status: MeasurementStatus
    wall_time_samples: list[float] = field(default_factory=list)
    warmup_samples: list[float] = field(default_factory=list)
    resolved_source: ResolvedSource | None = None
    timing_method: TimingMethod = TimingMethod.SYSTEM
    reason: str = ""
    error_type: str | None = None
    error_context: dict[str, Any] | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is MeasurementStatus.SUCCESS

    @classmethod
    def skipped(
        cls,
        unit: RunUnit,
        reason: str,
        *,
        source: ResolvedSource | None = None,
        samples: list[float] | None = None,
    ) -> "Measurement":
        return cls(
            run_unit=unit,
            status=MeasurementStatus.SKIPPED,
            wall_time_samples=list(samples or []),
            resolved_source=source,
            reason=reason,
        )

    @classmethod
    def failed(
        cls,
        unit: RunUnit,
        reason: str,
        *,
        source: ResolvedSource | None = None,
        error_type: str | None = None,
        error_context: dict[str, Any] | None = None,
    ) -> "Measurement":
        return cls(
            run_unit=unit,
            status=MeasurementStatus.FAILED,
            resolved_source=source,
            reason=reason,
            error_type=error_type,
            error_context=error_context,
        )
