from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from tb_common.api import TBError
from tb_runner.api import DEFAULT_BACKENDS, enumerate_cases, missing_local_tools, required_local_tools
from tb_ui.presenters.report import build_catalog_table
from tb_ui.wiring.dependencies import UIContext, load_config


def register_list_command(app: typer.Typer, ctx: UIContext) -> None:
    """Register the list command on the given Typer app."""

    @app.command("list")
    def list_catalog(
        config: Optional[Path] = typer.Option(
            None, "--config", "-c", help="Config file declaring extra backends."
        ),
    ) -> None:
        """Show the known bench suites (with their cases) and backends."""
        try:
            cfg = load_config(config)
        except TBError as exc:
            ctx.ui.present.error(str(exc))
            raise typer.Exit(2)

        registry = ctx.registry_factory()
        workloads = registry.available(load_entrypoints=True)
        if not workloads:
            ctx.ui.present.warning("No workloads registered.")
        benches = {name: enumerate_cases(name, registry) for name in workloads}
        backends = {**DEFAULT_BACKENDS, **cfg.backend_specs()}
        tools = {name: required_local_tools(name, registry) for name in workloads}
        missing = missing_local_tools(workloads, registry, which=ctx.which)
        for table in build_catalog_table(benches, backends, tools=tools, missing=missing):
            ctx.ui.tables.show(table)
        for bench, absent in sorted(missing.items()):
            ctx.ui.present.warning(f"{bench} needs {', '.join(absent)}, not found on PATH.")
