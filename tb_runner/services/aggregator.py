"""Package measurements into a frozen, shareable report."""

from __future__ import annotations

import importlib.metadata
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

import pandas as pd

from tb_runner.engine.planning import generate_run_id
from tb_runner.models.run import Measurement, MeasurementStatus, RunUnit, TimingMethod
from tb_runner.models.version import (
    ResolvedSource,
    format_version_spec,
    parse_version_spec,
)
from tb_runner.system_info import EnvironmentInfo


logger = logging.getLogger(__name__)

TOOL_NAME = "tensorbench"


def tool_version() -> str:
    try:
        return importlib.metadata.version(TOOL_NAME)
    except importlib.metadata.PackageNotFoundError:
        return "0+unknown"


@dataclass(frozen=True)
class UnitSummary:
    """Statistics over the measured samples of one unit, in seconds."""

    num_samples: int
    mean: float
    median: float
    min: float
    max: float
    variance: float | None
    stddev: float | None

    @classmethod
    def from_samples(cls, samples: Iterable[float]) -> "UnitSummary | None":
        series = pd.Series(list(samples), dtype="float64")
        if series.empty:
            return None
        variance: float | None = None
        stddev: float | None = None
        if len(series) >= 2:
            variance = float(series.var(ddof=1))
            stddev = float(series.std(ddof=1))
        return cls(
            num_samples=int(len(series)),
            mean=float(series.mean()),
            median=float(series.median()),
            min=float(series.min()),
            max=float(series.max()),
            variance=variance,
            stddev=stddev,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "numSamples": self.num_samples,
            "mean": self.mean,
            "median": self.median,
            "min": self.min,
            "max": self.max,
            "variance": self.variance,
            "stddev": self.stddev,
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class Report:
    """Finalized output of one run.

    ``summaries`` is keyed by ``RunUnit.key`` and only holds successful
    units. Durations are seconds throughout.
    """

    run_id: str
    measurements: tuple[Measurement, ...]
    summaries: Mapping[str, UnitSummary]
    environment: EnvironmentInfo | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tool_version: str = field(default_factory=tool_version)
    local_path: Path | None = field(default=None, compare=False)

    def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in MeasurementStatus}
        for measurement in self.measurements:
            counts[measurement.status.value] += 1
        return counts

    def summary_for(self, unit: RunUnit) -> UnitSummary | None:
        return self.summaries.get(unit.key)

    def records(self) -> list[dict[str, Any]]:
        """One flat record per measurement, ordered by matrix position."""
        records = []
        for measurement in self.measurements:
            unit = measurement.run_unit
            source = measurement.resolved_source
            summary = self.summaries.get(unit.key)
            record: dict[str, Any] = {
                "index": unit.index,
                "benchmark": unit.bench_id,
                "case": unit.case,
                "backend": unit.backend_id,
                "dtype": unit.dtype,
                "version": unit.version.label,
                "versionSpec": format_version_spec(unit.version),
                "gitHash": source.revision if source else None,
                "source": source.to_dict() if source else None,
                "status": measurement.status.value,
                "timingMethod": measurement.timing_method.value,
                "reason": measurement.reason,
                "errorType": measurement.error_type,
                "errorContext": measurement.error_context,
                "startedAt": _iso(measurement.started_at),
                "finishedAt": _iso(measurement.finished_at),
                "rawDurations": list(measurement.wall_time_samples),
                "warmupDurations": list(measurement.warmup_samples),
            }
            if summary:
                record.update(summary.to_dict())
            else:
                record.update(
                    {
                        "numSamples": len(measurement.wall_time_samples),
                        "mean": None,
                        "median": None,
                        "min": None,
                        "max": None,
                        "variance": None,
                        "stddev": None,
                    }
                )
            records.append(record)
        return records

    def to_payload(self) -> dict[str, Any]:
        """Upload payload; one request carries the whole report."""
        return {
            "runId": self.run_id,
            "createdAt": self.created_at.isoformat(),
            "tool": {"name": TOOL_NAME, "version": self.tool_version},
            "systemInfo": self.environment.to_dict() if self.environment else None,
            "counts": self.counts(),
            "records": self.records(),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Report":
        measurements = [_measurement_from_record(record) for record in payload.get("records") or []]
        env = payload.get("systemInfo")
        tool = payload.get("tool") or {}
        return build_report(
            measurements,
            environment=EnvironmentInfo.from_dict(env) if env else None,
            run_id=payload["runId"],
            created_at=_parse_iso(payload.get("createdAt")),
            version=tool.get("version"),
        )

    def to_frame(self) -> pd.DataFrame:
        """Flat table of the records without raw samples."""
        rows = self.records()
        columns = [
            "index", "benchmark", "case", "backend", "dtype", "version", "versionSpec",
            "gitHash", "status", "timingMethod", "reason", "errorType", "startedAt", "finishedAt",
            "numSamples", "mean", "median", "min", "max", "variance", "stddev",
        ]
        return pd.DataFrame(rows, columns=columns)


def _measurement_from_record(record: Mapping[str, Any]) -> Measurement:
    spec = parse_version_spec(record["versionSpec"])
    unit = RunUnit(
        bench_id=record["benchmark"],
        backend_id=record["backend"],
        dtype=record["dtype"],
        version=spec,
        case_id=record.get("case") or "",
        index=int(record.get("index", 0)),
    )
    source_data = record.get("source")
    source = None
    if source_data:
        source = ResolvedSource(
            spec=spec,
            location=source_data["location"],
            revision=source_data["revision"],
            identity=source_data["identity"],
        )
    return Measurement(
        run_unit=unit,
        status=MeasurementStatus(record["status"]),
        wall_time_samples=[float(v) for v in record.get("rawDurations") or []],
        warmup_samples=[float(v) for v in record.get("warmupDurations") or []],
        resolved_source=source,
        timing_method=TimingMethod(record.get("timingMethod") or TimingMethod.SYSTEM.value),
        reason=record.get("reason") or "",
        error_type=record.get("errorType"),
        error_context=record.get("errorContext"),
        started_at=_parse_iso(record.get("startedAt")),
        finished_at=_parse_iso(record.get("finishedAt")),
    )


def build_report(
    measurements: Iterable[Measurement],
    *,
    environment: EnvironmentInfo | None,
    run_id: str,
    created_at: datetime | None = None,
    version: str | None = None,
) -> Report:
    ordered = tuple(sorted(measurements, key=lambda m: m.run_unit.index))
    summaries: dict[str, UnitSummary] = {}
    for measurement in ordered:
        if not measurement.succeeded:
            continue
        summary = UnitSummary.from_samples(measurement.wall_time_samples)
        if summary is not None:
            summaries[measurement.run_unit.key] = summary
    return Report(
        run_id=run_id,
        measurements=ordered,
        summaries=summaries,
        environment=environment,
        created_at=created_at or datetime.now(timezone.utc),
        tool_version=version or tool_version(),
    )


class ResultAggregator:
    """Collects measurements for one run and freezes them into a Report."""

    def __init__(self, run_id: str | None = None, environment: EnvironmentInfo | None = None) -> None:
        self.run_id = run_id
        self.environment = environment
        self._lock = threading.Lock()
        self._measurements: dict[RunUnit, Measurement] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def has(self, unit: RunUnit) -> bool:
        with self._lock:
            return unit in self._measurements

    def add(self, measurement: Measurement) -> None:
        with self._lock:
            if self._frozen:
                raise RuntimeError("Report already finalized; no further measurements accepted")
            unit = measurement.run_unit
            if unit in self._measurements:
                raise ValueError(f"Duplicate measurement for unit {unit.key}")
            self._measurements[unit] = measurement

    def finalize(
        self,
        measurements: Iterable[Measurement] = (),
        environment: EnvironmentInfo | None = None,
        run_id: str | None = None,
    ) -> Report:
        """Freeze the aggregator and return the report.

        Only packages: the measurements are not re-validated or re-timed.
        """
        for measurement in measurements:
            self.add(measurement)
        with self._lock:
            self._frozen = True
            collected = list(self._measurements.values())
        if run_id is None and self.run_id is None:
            run_id = generate_run_id()
        report = build_report(
            collected,
            environment=environment or self.environment,
            run_id=run_id or self.run_id,
        )
        logger.info(
            "Finalized report %s with %d measurements (%s)",
            report.run_id,
            len(report.measurements),
            ", ".join(f"{k}={v}" for k, v in report.counts().items()),
        )
        return report
