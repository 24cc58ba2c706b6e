"""Helpers for expanding a selection into the ordered run matrix."""

from __future__ import annotations

import logging
import shutil
import uuid
from collections import OrderedDict
from datetime import UTC, datetime
from typing import Callable, Iterable, Sequence

from tb_common.errors import ConfigurationError
from tb_runner.models.run import RunUnit
from tb_runner.models.version import VersionSpec, parse_version_spec
from tb_runner.plugin_system.registry import WorkloadRegistry


logger = logging.getLogger(__name__)


def generate_run_id() -> str:
    """Generate a timestamp-based run id with a short random suffix."""
    stamp = datetime.now(UTC).strftime("run-%Y%m%d-%H%M%S")
    return f"{stamp}-{uuid.uuid4().hex[:6]}"


def coerce_versions(versions: Iterable[VersionSpec | str]) -> list[VersionSpec]:
    specs: list[VersionSpec] = []
    for version in versions:
        spec = parse_version_spec(version) if isinstance(version, str) else version
        if spec not in specs:
            specs.append(spec)
    return specs


def enumerate_cases(bench: str, registry: WorkloadRegistry | None) -> list[str]:
    """Return the cases of a suite; unknown or failing suites yield the suite itself."""
    if registry is None or bench not in registry:
        return [bench]
    try:
        cases = list(registry.get(bench).enumerate())
    except Exception as exc:
        logger.warning("Failed to enumerate cases of %s: %s", bench, exc)
        return [bench]
    return cases or [bench]


def required_local_tools(bench: str, registry: WorkloadRegistry | None) -> list[str]:
    if registry is None or bench not in registry:
        return []
    try:
        workload = registry.get(bench)
    except KeyError:
        return []
    if not hasattr(workload, "get_required_local_tools"):
        return []
    return list(workload.get_required_local_tools())


def missing_local_tools(
    benches: Iterable[str],
    registry: WorkloadRegistry | None,
    which: Callable[[str], str | None] = shutil.which,
) -> dict[str, list[str]]:
    """Return ``{bench: [tool, ...]}`` for suites whose tools are not on PATH."""
    missing: dict[str, list[str]] = {}
    for bench in benches:
        absent = [tool for tool in required_local_tools(bench, registry) if which(tool) is None]
        if absent:
            missing[bench] = absent
    return missing


def expand_matrix(
    benches: Sequence[str],
    backends: Sequence[str],
    versions: Iterable[VersionSpec | str],
    dtypes: Sequence[str],
    registry: WorkloadRegistry | None = None,
) -> list[RunUnit]:
    """Expand the selection in order versions, backends, benches, cases, dtypes."""
    specs = coerce_versions(versions)
    if not benches or not backends or not specs or not dtypes:
        raise ConfigurationError(
            "Selection must name at least one bench, backend, version and dtype",
            context={
                "benches": list(benches),
                "backends": list(backends),
                "versions": [spec.label for spec in specs],
                "dtypes": list(dtypes),
            },
        )
    cases = {bench: enumerate_cases(bench, registry) for bench in benches}
    units: list[RunUnit] = []
    for version in specs:
        for backend in backends:
            for bench in benches:
                for case in cases[bench]:
                    for dtype in dtypes:
                        units.append(
                            RunUnit(
                                bench_id=bench,
                                backend_id=backend,
                                dtype=dtype,
                                version=version,
                                case_id=case,
                                index=len(units),
                            )
                        )
    return units


def group_lanes(units: Iterable[RunUnit]) -> "OrderedDict[tuple[VersionSpec, str], list[RunUnit]]":
    """Group units by (version, backend) keeping matrix order inside each lane."""
    lanes: OrderedDict[tuple[VersionSpec, str], list[RunUnit]] = OrderedDict()
    for unit in units:
        lanes.setdefault(unit.lane, []).append(unit)
    return lanes
