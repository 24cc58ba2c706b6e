"""
Local controller module for a benchmark run.

Wires the resolver, build cache, workloads and executor for one run, then
persists the report under the output directory.
"""

from __future__ import annotations

import logging
import subprocess
from typing import Callable, Optional

from tb_runner.engine.build_cache import BuildCache, Builder
from tb_runner.engine.builder import CargoBuilder
from tb_runner.engine.executor import ExecutionSettings, MatrixExecutor
from tb_runner.engine.git import GitRemote
from tb_runner.engine.planning import generate_run_id, missing_local_tools
from tb_runner.engine.resolver import VersionResolver
from tb_runner.engine.stop_token import StopToken
from tb_runner.models.config import BenchmarkConfig
from tb_runner.models.events import EventCallback
from tb_runner.plugin_system.registry import WorkloadRegistry, create_registry
from tb_runner.services.aggregator import Report
from tb_runner.services.release_index import ReleaseIndex
from tb_runner.services.results import persist_report
from tb_runner.system_info import EnvironmentInfo, collect_environment

logger = logging.getLogger(__name__)


class LocalRunner:
    """Runs one benchmark matrix on this host."""

    def __init__(
        self,
        config: BenchmarkConfig,
        registry: WorkloadRegistry | None = None,
        progress_callback: Optional[EventCallback] = None,
        stop_token: StopToken | None = None,
        builder: Builder | None = None,
        command_runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        release_index: ReleaseIndex | None = None,
        environment_provider: Callable[[], EnvironmentInfo] = collect_environment,
    ):
        self.config = config
        self.registry = registry or create_registry()
        self._progress_callback = progress_callback
        self._stop_token = stop_token
        self._command_runner = command_runner
        self._builder = builder
        self._release_index = release_index
        self._environment_provider = environment_provider

    def _make_resolver(self) -> VersionResolver:
        remote = GitRemote(
            url=self.config.repository_url,
            mirror_dir=self.config.cache_dir / "mirror.git",
            runner=self._command_runner,
        )
        releases = self._release_index or ReleaseIndex(base_url=self.config.release_index_url)
        return VersionResolver(
            remote=remote,
            releases=releases,
            crate_name=self.config.crate_name,
            local_dir=self.config.local_dir,
        )

    def _make_builder(self) -> Builder:
        if self._builder is not None:
            return self._builder
        return CargoBuilder(
            checkout_dir=self.config.checkout_dir,
            bench_crate=self.config.bench_crate,
            runner=self._command_runner,
        )

    def run(self, run_id: str | None = None, persist: bool = True) -> Report:
        """Execute the configured selection and return the (persisted) report."""
        config = self.config
        selection = config.selection
        run_id = run_id or generate_run_id()
        config.ensure_output_dirs()
        for bench, tools in missing_local_tools(selection.benches, self.registry).items():
            logger.warning("Bench %s needs %s, not found on PATH", bench, ", ".join(tools))

        logger.info("Collecting environment information")
        environment = self._environment_provider()

        settings = ExecutionSettings(
            repetitions=config.repetitions,
            warmup=config.warmup,
            parallelism=config.parallelism,
            unit_timeout_seconds=config.unit_timeout_seconds,
            global_timeout_seconds=config.global_timeout_seconds,
        )
        with BuildCache(self._make_builder()) as cache:
            executor = MatrixExecutor(
                resolver=self._make_resolver(),
                build_cache=cache,
                registry=self.registry,
                settings=settings,
                backends=config.backend_specs(),
                local_dir=config.local_dir,
                stop_token=self._stop_token,
                environment=environment,
                event_callback=self._progress_callback,
                run_id=run_id,
            )
            report = executor.run(
                selection.benches,
                selection.backends,
                selection.version_specs(),
                selection.dtypes,
            )
            logger.info("Build cache: %s", cache.stats())

        if persist:
            report = persist_report(report, config.output_dir)
        return report
