from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from tb_common.api import TBError
from tb_ui.wiring.dependencies import UIContext, load_config


def create_auth_app(ctx: UIContext) -> typer.Typer:
    """Build the auth Typer app (device-code login for sharing)."""
    app = typer.Typer(help="Log in to the benchmark server.", no_args_is_help=True)

    def _client(config: Optional[Path]):
        try:
            return ctx.sharing_client(load_config(config).share)
        except TBError as exc:
            ctx.ui.present.error(str(exc))
            raise typer.Exit(2)

    @app.command("login")
    def login(
        config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file."),
    ) -> None:
        """Run the device-code login and store the token."""
        client = _client(config)
        try:
            client.authenticate()
        except TBError as exc:
            ctx.ui.present.error(f"Login failed: {exc}")
            raise typer.Exit(1)
        ctx.ui.present.success("Logged in.")

    @app.command("logout")
    def logout(
        config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file."),
    ) -> None:
        """Forget the stored token."""
        if _client(config).logout():
            ctx.ui.present.success("Logged out.")
        else:
            ctx.ui.present.info("No stored token.")

    @app.command("status")
    def status(
        config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file."),
    ) -> None:
        """Report whether a valid token is stored."""
        token = _client(config).current_token()
        if token is None:
            ctx.ui.present.warning("Not logged in (no valid token).")
            raise typer.Exit(1)
        expires = token.expires_at.isoformat() if token.expires_at else "never"
        ctx.ui.present.success(f"Logged in; token expires {expires}.")

    return app
