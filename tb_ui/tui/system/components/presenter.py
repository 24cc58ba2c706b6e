from rich.console import Console
from rich.panel import Panel

from tb_ui.tui.system.protocols import Presenter

_LEVEL_TEMPLATES = {
    "info": "[blue]ℹ[/blue] {message}",
    "warning": "[yellow]⚠ {message}[/yellow]",
    "error": "[red]✖ {message}[/red]",
    "success": "[green]✔ {message}[/green]",
}


class _RichPresenterSink:
    def __init__(self, console: Console) -> None:
        self._console = console

    def emit(self, level: str, message: str) -> None:
        template = _LEVEL_TEMPLATES.get(level, "{message}")
        self._console.print(template.format(message=message), highlight=False)

    def emit_panel(self, message: str, title: str | None, border_style: str | None) -> None:
        self._console.print(Panel(message, title=title, border_style=border_style or "cyan"))


class RichPresenter(Presenter):
    def __init__(self, console: Console) -> None:
        super().__init__(_RichPresenterSink(console))
