from __future__ import annotations

import shutil

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from tb_ui.tui.system.models import TableModel

RICH_ACCENT_BOLD = "bold cyan"
RICH_BORDER_STYLE = "cyan"


def _console_width(console: Console) -> int | None:
    width = console.size.width
    if width > 0:
        return width
    fallback = shutil.get_terminal_size(fallback=(100, 24)).columns
    return fallback if fallback > 0 else None


def build_rich_table(
    model: TableModel,
    *,
    console: Console,
    show_lines: bool = False,
    border_style: str = RICH_BORDER_STYLE,
    header_style: str = RICH_ACCENT_BOLD,
    title_style: str = RICH_ACCENT_BOLD,
    box_style: box.Box = box.ROUNDED,
) -> Table:
    """
    Build a Rich Table from a TableModel that fits the current terminal width.

    Cells are single-line and truncated with an ellipsis when needed.
    """
    term_width = _console_width(console)
    max_table_width = max(60, (term_width - 2) if term_width else 100)

    title_text = Text.from_markup(str(model.title))
    title_text.no_wrap = True
    title_text.overflow = "ellipsis"

    rich_table = Table(
        title=title_text,
        show_lines=show_lines,
        box=box_style,
        border_style=border_style,
        header_style=header_style,
        title_style=title_style,
        width=None if term_width is None else min(max_table_width, term_width),
    )
    for col in model.columns:
        rich_table.add_column(col, overflow="ellipsis", no_wrap=True, min_width=4)
    for row in model.rows:
        rich_table.add_row(*[str(cell) for cell in row])
    return rich_table


class RichTablePresenter:
    def __init__(self, console: Console):
        self._console = console

    def show(self, table: TableModel) -> None:
        self._console.print(build_rich_table(table, console=self._console))
