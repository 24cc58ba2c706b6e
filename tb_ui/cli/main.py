"""
Command-line interface for tensorbench.

Builds tensor library versions, measures bench suites across backends and
dtypes, and shares the resulting reports.
"""

from __future__ import annotations

import typer

from tb_common.api import configure_logging
from tb_ui.cli.commands.auth import create_auth_app
from tb_ui.cli.commands.list import register_list_command
from tb_ui.cli.commands.run import register_run_command
from tb_ui.cli.commands.share import register_share_command
from tb_ui.wiring.dependencies import UIContext

# Initialize global context (lazy)
ctx_store = UIContext()

app = typer.Typer(
    help="Benchmark tensor library versions across backends and element types.",
    no_args_is_help=True,
)


@app.callback()
def entry(
    headless: bool = typer.Option(
        False,
        "--headless",
        help="Force headless output (useful in CI).",
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable verbose debug logging."),
) -> None:
    """Global options shared by every command."""
    configure_logging(debug=debug, force=True)
    ctx_store.headless = headless


register_run_command(app=app, ctx=ctx_store)
register_list_command(app=app, ctx=ctx_store)
register_share_command(app=app, ctx=ctx_store)
app.add_typer(create_auth_app(ctx_store), name="auth")


def main() -> None:
    """Console script entrypoint (Typer app)."""
    app()


if __name__ == "__main__":
    main()
