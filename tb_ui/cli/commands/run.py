from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional

import typer

from tb_common.api import TBError, configure_logging
from tb_runner.api import BenchmarkConfig, StopToken, TriggerFile
from tb_ui.presenters.report import build_report_table, format_event, summarize_counts
from tb_ui.wiring.dependencies import UIContext, load_config


def _split(values: Optional[List[str]]) -> list[str]:
    items: list[str] = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


def resolve_run_config(
    config_path: Optional[Path],
    trigger: Optional[Path],
    *,
    benches: Optional[List[str]] = None,
    backends: Optional[List[str]] = None,
    versions: Optional[List[str]] = None,
    dtypes: Optional[List[str]] = None,
    overrides: Optional[dict[str, Any]] = None,
    share: Optional[bool] = None,
) -> BenchmarkConfig:
    """Config file < TB_* environment < trigger file < command-line flags."""
    cfg = load_config(config_path)
    selection: dict[str, Any] = {}
    if trigger is not None:
        selection.update(TriggerFile.load(trigger).selection.model_dump(exclude_unset=True))
    for key, values in (
        ("benches", benches),
        ("backends", backends),
        ("versions", versions),
        ("dtypes", dtypes),
    ):
        parsed = _split(values)
        if parsed:
            selection[key] = parsed
    update = {key: value for key, value in (overrides or {}).items() if value is not None}
    share_update = {"enabled": share} if share is not None else {}
    return cfg.merged(update, selection=selection, share=share_update)


def register_run_command(app: typer.Typer, ctx: UIContext) -> None:
    """Register the run command on the given Typer app."""

    @app.command("run")
    def run(
        benches: Optional[List[str]] = typer.Option(
            None, "--bench", "-b", help="Bench suites to run (repeat or comma-separate)."
        ),
        backends: Optional[List[str]] = typer.Option(
            None, "--backend", "-B", help="Backends to measure (repeat or comma-separate)."
        ),
        versions: Optional[List[str]] = typer.Option(
            None,
            "--version",
            "-V",
            help="Versions: release (0.18.0), branch (main), commit hash, path or 'local'.",
        ),
        dtypes: Optional[List[str]] = typer.Option(
            None, "--dtype", "-d", help="Element types (f32, f16, bf16)."
        ),
        config: Optional[Path] = typer.Option(
            None, "--config", "-c", help="YAML/JSON config file; tensorbench.yaml is used when present."
        ),
        trigger: Optional[Path] = typer.Option(
            None, "--trigger", help="TOML trigger file carrying the selection."
        ),
        repetitions: Optional[int] = typer.Option(
            None, "--repetitions", "-r", help="Measured repetitions per unit (must be >= 1)."
        ),
        warmup: Optional[int] = typer.Option(None, "--warmup", help="Discarded warm-up repetitions."),
        parallelism: Optional[int] = typer.Option(
            None,
            "--parallelism",
            "-j",
            help="Lanes executed concurrently. Builds overlap; cargo benches sharing a results directory still run one at a time.",
        ),
        unit_timeout: Optional[float] = typer.Option(
            None, "--unit-timeout", help="Seconds allowed per unit before it is failed."
        ),
        timeout: Optional[float] = typer.Option(
            None, "--timeout", help="Seconds allowed for the whole run; remaining units are skipped."
        ),
        local_dir: Optional[Path] = typer.Option(
            None, "--local-dir", help="Source checkout used for the 'local' version."
        ),
        output_dir: Optional[Path] = typer.Option(
            None, "--output-dir", "-o", help="Directory receiving <run_id>/report.json."
        ),
        run_id: Optional[str] = typer.Option(None, "--run-id", help="Explicit run identifier."),
        share: Optional[bool] = typer.Option(
            None, "--share/--no-share", help="Upload the report when the run finishes."
        ),
        stop_file: Optional[Path] = typer.Option(
            None,
            "--stop-file",
            envvar="TB_STOP_FILE",
            help="Path to a stop sentinel file; when created, the run stops gracefully.",
        ),
        debug: bool = typer.Option(False, "--debug", help="Enable verbose debug logging."),
    ) -> None:
        """Build and measure the selected benches across backends, versions and dtypes."""
        if debug:
            configure_logging(debug=True, force=True)
            ctx.ui.present.info("Debug logging enabled")

        if repetitions is not None and repetitions < 1:
            ctx.ui.present.error("Repetitions must be at least 1.")
            raise typer.Exit(2)

        try:
            cfg = resolve_run_config(
                config,
                trigger,
                benches=benches,
                backends=backends,
                versions=versions,
                dtypes=dtypes,
                overrides={
                    "repetitions": repetitions,
                    "warmup": warmup,
                    "parallelism": parallelism,
                    "unit_timeout_seconds": unit_timeout,
                    "global_timeout_seconds": timeout,
                    "local_dir": local_dir,
                    "output_dir": output_dir,
                },
                share=share,
            )
        except TBError as exc:
            ctx.ui.present.error(str(exc))
            if exc.__cause__ is not None:
                ctx.ui.present.info(str(exc.__cause__))
            raise typer.Exit(2)

        selection = cfg.selection
        if not selection.benches or not selection.backends:
            ctx.ui.present.error("Select at least one bench (--bench) and one backend (--backend).")
            ctx.ui.present.info("Use `tbench list` to see the available suites and backends.")
            raise typer.Exit(2)

        def on_event(event) -> None:
            if event.status != "running":
                ctx.ui.present.info(format_event(event))

        try:
            with StopToken(stop_file=stop_file) as token:
                runner = ctx.runner_factory(cfg, progress_callback=on_event, stop_token=token)
                report = runner.run(run_id=run_id)
        except TBError as exc:
            ctx.ui.present.error(f"Run failed: {exc}")
            raise typer.Exit(1)

        ctx.ui.tables.show(build_report_table(report))
        ctx.ui.present.info(f"Units: {summarize_counts(report)}")
        if report.local_path:
            ctx.ui.present.success(f"Report saved to {report.local_path}")

        if cfg.share.enabled:
            try:
                result = ctx.sharing_client(cfg.share).share(report)
            except TBError as exc:
                ctx.ui.present.error(f"Sharing failed: {exc}")
                if report.local_path:
                    ctx.ui.present.info(f"Retry later with `tbench share {report.local_path}`")
                raise typer.Exit(1)
            ctx.ui.present.success(f"Report {result.run_id} shared ({result.status}).")

        if report.counts()["failed"]:
            raise typer.Exit(1)
