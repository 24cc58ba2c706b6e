"""
Executor for the run matrix.

Units are grouped in lanes keyed by (version, backend). Lanes run on a
bounded thread pool; each lane executes its units sequentially in matrix
order. Every unit yields exactly one Measurement, whatever goes wrong.
"""

from __future__ import annotations

import contextlib
import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Sequence

from structlog.contextvars import bound_contextvars

from tb_common.errors import BuildError, TBError, UnitTimeoutError, WorkloadError, error_to_payload
from tb_runner.catalog import BackendSpec, lookup_backend
from tb_runner.engine.build_cache import BuildCache
from tb_runner.engine.planning import expand_matrix, generate_run_id, group_lanes
from tb_runner.engine.resolver import VersionResolver
from tb_runner.engine.stop_token import StopToken
from tb_runner.models.events import EventCallback, RunEvent
from tb_runner.models.run import (
    SKIP_INTERRUPTED,
    SKIP_UNSUPPORTED,
    ArtifactHandle,
    Measurement,
    MeasurementStatus,
    RunUnit,
    TimingMethod,
)
from tb_runner.models.version import ResolvedSource, VersionSpec
from tb_runner.plugin_system.interface import Workload
from tb_runner.plugin_system.registry import WorkloadRegistry
from tb_runner.services.aggregator import Report, ResultAggregator
from tb_runner.system_info import EnvironmentInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionSettings:
    """Measurement parameters applied to every unit."""

    repetitions: int = 10
    warmup: int = 1
    parallelism: int = 1
    unit_timeout_seconds: float | None = None
    global_timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.repetitions < 1:
            raise ValueError("repetitions must be >= 1")
        if self.warmup < 0:
            raise ValueError("warmup must be >= 0")
        if self.parallelism < 1:
            raise ValueError("parallelism must be >= 1")


@dataclass
class _RunContext:
    run_id: str
    total: int
    token: StopToken
    aggregator: ResultAggregator
    hardware_lock: threading.Lock = field(default_factory=threading.Lock)


def _failed(unit: RunUnit, exc: TBError, source: ResolvedSource | None = None) -> Measurement:
    payload = error_to_payload(exc)
    context = dict(payload["error_context"])
    if isinstance(exc, BuildError) and exc.stderr_excerpt:
        context["stderr_excerpt"] = exc.stderr_excerpt
    return Measurement.failed(
        unit,
        payload["error"],
        source=source,
        error_type=payload["error_type"],
        error_context=context,
    )


# Duck-typed suites only need name, enumerate and run.
def _workload_supports(workload: Workload, unit: RunUnit) -> bool:
    supports = getattr(workload, "supports", None)
    if supports is None:
        return True
    return bool(supports(unit.backend_id, unit.dtype))


def _workload_timing(workload: Workload) -> TimingMethod:
    return TimingMethod(getattr(workload, "timing_method", TimingMethod.SYSTEM))


class MatrixExecutor:
    """Runs the run matrix against a resolver, a build cache and the workloads."""

    def __init__(
        self,
        *,
        resolver: VersionResolver,
        build_cache: BuildCache,
        registry: WorkloadRegistry,
        settings: ExecutionSettings | None = None,
        backends: dict[str, BackendSpec] | None = None,
        local_dir: Path | None = None,
        stop_token: StopToken | None = None,
        environment: EnvironmentInfo | None = None,
        event_callback: EventCallback | None = None,
        run_id: str | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.resolver = resolver
        self.build_cache = build_cache
        self.registry = registry
        self.settings = settings or ExecutionSettings()
        self.backends = backends or {}
        self.local_dir = local_dir
        self.stop_token = stop_token
        self.environment = environment
        self.event_callback = event_callback
        self.run_id = run_id
        self.clock = clock

    def run(
        self,
        benches: Sequence[str],
        backends: Sequence[str],
        versions: Iterable[VersionSpec | str],
        dtypes: Sequence[str],
    ) -> Report:
        """Execute every unit of the selection and return the report.

        Unit-level failures never abort the run; the report always covers
        every unit of the matrix.
        """
        units = expand_matrix(benches, backends, versions, dtypes, self.registry)
        lanes = group_lanes(units)
        run_id = self.run_id or generate_run_id()
        owns_token = self.stop_token is None
        token = self.stop_token or StopToken(enable_signals=False)
        ctx = _RunContext(
            run_id=run_id,
            total=len(units),
            token=token,
            aggregator=ResultAggregator(run_id=run_id, environment=self.environment),
        )
        if self.settings.global_timeout_seconds:
            token.arm_deadline(self.settings.global_timeout_seconds)

        workers = min(self.settings.parallelism, len(lanes))
        logger.info(
            "Run %s: %d units in %d lanes with %d worker(s)", run_id, len(units), len(lanes), workers
        )
        try:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tb-lane") as pool:
                futures = {
                    pool.submit(self._run_lane, ctx, lane_units): lane
                    for lane, lane_units in lanes.items()
                }
                for future in as_completed(futures):
                    version, backend = futures[future]
                    try:
                        future.result()
                    except Exception:
                        logger.exception("Lane %s/%s crashed", version.label, backend)
        finally:
            token.disarm_deadline()
            if owns_token:
                token.restore()

        self._fill_missing(ctx, units)
        return ctx.aggregator.finalize()

    def _fill_missing(self, ctx: _RunContext, units: list[RunUnit]) -> None:
        for unit in units:
            if ctx.aggregator.has(unit):
                continue
            reason = ctx.token.reason or SKIP_INTERRUPTED
            ctx.aggregator.add(Measurement.skipped(unit, reason))
            self._emit(ctx, unit, "skipped", reason)

    def _run_lane(self, ctx: _RunContext, units: list[RunUnit]) -> None:
        for unit in units:
            measurement = self._execute_unit(ctx, unit)
            ctx.aggregator.add(measurement)

    def _execute_unit(self, ctx: _RunContext, unit: RunUnit) -> Measurement:
        if ctx.token.should_stop():
            reason = ctx.token.reason or SKIP_INTERRUPTED
            self._emit(ctx, unit, "skipped", reason)
            return Measurement.skipped(unit, reason)

        with bound_contextvars(run_id=ctx.run_id, unit=unit.key):
            self._emit(ctx, unit, "running")
            started_at = datetime.now(timezone.utc)
            try:
                measurement = self._measure(ctx, unit)
            except TBError as exc:
                logger.error("Unit %s failed: %s", unit.key, exc)
                measurement = _failed(unit, exc)
            except Exception as exc:
                logger.exception("Unexpected error in unit %s", unit.key)
                measurement = Measurement.failed(
                    unit, f"Unexpected error: {exc}", error_type=type(exc).__name__
                )
            measurement.started_at = started_at
            measurement.finished_at = datetime.now(timezone.utc)
            self._emit(ctx, unit, measurement.status.value, measurement.reason)
            return measurement

    def _measure(self, ctx: _RunContext, unit: RunUnit) -> Measurement:
        backend = lookup_backend(unit.backend_id, self.backends)
        try:
            workload = self.registry.get(unit.bench_id)
        except KeyError as exc:
            raise WorkloadError(
                f"Unknown bench suite {unit.bench_id!r}", context=unit.describe(), cause=exc
            ) from exc
        if not backend.supports(unit.dtype) or not _workload_supports(workload, unit):
            logger.info("Skipping %s: %s does not support %s", unit.key, unit.backend_id, unit.dtype)
            return Measurement.skipped(unit, SKIP_UNSUPPORTED)

        source = self.resolver.resolve(unit.version, self.local_dir)
        try:
            artifact = self.build_cache.get_or_build(source, backend, unit.dtype)
            return self._sample(ctx, unit, backend, workload, artifact)
        except TBError as exc:
            logger.error("Unit %s failed: %s", unit.key, exc)
            return _failed(unit, exc, source)

    def _sample(
        self,
        ctx: _RunContext,
        unit: RunUnit,
        backend: BackendSpec,
        workload: Workload,
        artifact: ArtifactHandle,
    ) -> Measurement:
        settings = self.settings
        total = settings.warmup + settings.repetitions
        warmup: list[float] = []
        samples: list[float] = []
        wall_clock_fallback = False
        lock = ctx.hardware_lock if backend.exclusive_hardware else contextlib.nullcontext()
        with lock:
            started = self.clock()
            for rep in range(total):
                if ctx.token.should_stop():
                    reason = ctx.token.reason or SKIP_INTERRUPTED
                    logger.info("Stopping %s after %d/%d repetitions (%s)", unit.key, rep, total, reason)
                    measurement = Measurement.skipped(unit, reason, source=artifact.source, samples=samples)
                    measurement.warmup_samples = warmup
                    return measurement
                sample, fallback = self._run_once(workload, unit, artifact)
                wall_clock_fallback = wall_clock_fallback or fallback
                (warmup if rep < settings.warmup else samples).append(sample)
                elapsed = self.clock() - started
                if settings.unit_timeout_seconds and elapsed > settings.unit_timeout_seconds:
                    raise UnitTimeoutError(
                        f"Unit exceeded {settings.unit_timeout_seconds:g}s after {rep + 1}/{total} repetitions",
                        context={**unit.describe(), "elapsed_seconds": round(elapsed, 3)},
                    )
        timing = TimingMethod.SYSTEM if wall_clock_fallback else _workload_timing(workload)
        logger.debug("Measured %s: %d samples (%s timing)", unit.key, len(samples), timing.value)
        return Measurement(
            run_unit=unit,
            status=MeasurementStatus.SUCCESS,
            wall_time_samples=samples,
            warmup_samples=warmup,
            resolved_source=artifact.source,
            timing_method=timing,
        )

    def _run_once(
        self, workload: Workload, unit: RunUnit, artifact: ArtifactHandle
    ) -> tuple[float, bool]:
        """Return one sample and whether it was timed with the wall clock."""
        started = self.clock()
        try:
            value = workload.run(unit.case, unit.backend_id, unit.dtype, artifact)
        except TBError:
            raise
        except Exception as exc:
            raise WorkloadError(
                f"{unit.bench_id}/{unit.case} crashed: {exc}", context=unit.describe(), cause=exc
            ) from exc
        elapsed = self.clock() - started
        if value is None:
            return elapsed, True
        try:
            sample = float(value)
        except (TypeError, ValueError) as exc:
            raise WorkloadError(
                f"Invalid timing sample {value!r}", context=unit.describe(), cause=exc
            ) from exc
        if not math.isfinite(sample) or sample < 0:
            raise WorkloadError(f"Invalid timing sample {sample!r}", context=unit.describe())
        return sample, False

    def _emit(self, ctx: _RunContext, unit: RunUnit, status: str, message: str = "") -> None:
        if self.event_callback is None:
            return
        event = RunEvent(
            run_id=ctx.run_id,
            unit=unit.key,
            index=unit.index,
            total=ctx.total,
            status=status,
            message=message,
            timestamp=time.time(),
        )
        try:
            self.event_callback(event)
        except Exception:
            logger.debug("Event callback failed for %s", unit.key, exc_info=True)
