from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from tb_common.api import TBError
from tb_runner.api import load_report
from tb_ui.presenters.report import summarize_counts
from tb_ui.wiring.dependencies import UIContext, load_config


def register_share_command(app: typer.Typer, ctx: UIContext) -> None:
    """Register the share command on the given Typer app."""

    @app.command("share")
    def share(
        report_path: Path = typer.Argument(
            ..., help="report.json or the run directory containing it."
        ),
        config: Optional[Path] = typer.Option(
            None, "--config", "-c", help="Config file with the share settings."
        ),
        server_url: Optional[str] = typer.Option(
            None, "--server-url", help="Override the benchmark server URL."
        ),
    ) -> None:
        """Upload a previously saved report."""
        try:
            cfg = load_config(config)
            report = load_report(report_path)
        except TBError as exc:
            ctx.ui.present.error(str(exc))
            raise typer.Exit(2)

        share_cfg = cfg.share
        if server_url:
            share_cfg = share_cfg.model_copy(update={"server_url": server_url})

        ctx.ui.present.info(f"Sharing run {report.run_id} ({summarize_counts(report)})")
        try:
            result = ctx.sharing_client(share_cfg).share(report)
        except TBError as exc:
            ctx.ui.present.error(f"Sharing failed: {exc}")
            ctx.ui.present.info(f"The report is still available at {report.local_path or report_path}")
            raise typer.Exit(1)
        ctx.ui.present.success(f"Report {result.run_id} shared ({result.status}).")
