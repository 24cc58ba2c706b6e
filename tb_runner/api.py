"""Stable runner API surface."""

from tb_runner.catalog import DEFAULT_BACKENDS, DEFAULT_BENCHES, DTYPES, BackendSpec, lookup_backend
from tb_runner.engine.build_cache import BuildCache
from tb_runner.engine.builder import CargoBuilder
from tb_runner.engine.executor import ExecutionSettings, MatrixExecutor
from tb_runner.engine.planning import (
    enumerate_cases,
    expand_matrix,
    generate_run_id,
    missing_local_tools,
    required_local_tools,
)
from tb_runner.engine.resolver import VersionResolver
from tb_runner.engine.runner import LocalRunner
from tb_runner.engine.stop_token import StopToken
from tb_runner.models.config import BenchmarkConfig, SelectionConfig, ShareConfig, TriggerFile
from tb_runner.models.events import RunEvent
from tb_runner.models.run import ArtifactHandle, Measurement, MeasurementStatus, RunUnit, TimingMethod
from tb_runner.models.version import ResolvedSource, VersionSpec, parse_version_spec
from tb_runner.plugin_system.interface import Workload
from tb_runner.plugin_system.registry import WorkloadRegistry, create_registry
from tb_runner.services.aggregator import Report, ResultAggregator, UnitSummary
from tb_runner.services.results import load_report, persist_report
from tb_runner.system_info import EnvironmentInfo, collect_environment

__all__ = [
    "ArtifactHandle",
    "BackendSpec",
    "BenchmarkConfig",
    "BuildCache",
    "CargoBuilder",
    "DEFAULT_BACKENDS",
    "DEFAULT_BENCHES",
    "DTYPES",
    "EnvironmentInfo",
    "ExecutionSettings",
    "LocalRunner",
    "MatrixExecutor",
    "Measurement",
    "MeasurementStatus",
    "Report",
    "ResolvedSource",
    "ResultAggregator",
    "RunEvent",
    "RunUnit",
    "SelectionConfig",
    "ShareConfig",
    "StopToken",
    "TimingMethod",
    "TriggerFile",
    "UnitSummary",
    "VersionResolver",
    "VersionSpec",
    "Workload",
    "WorkloadRegistry",
    "collect_environment",
    "create_registry",
    "enumerate_cases",
    "expand_matrix",
    "generate_run_id",
    "load_report",
    "lookup_backend",
    "missing_local_tools",
    "parse_version_spec",
    "persist_report",
    "required_local_tools",
]
