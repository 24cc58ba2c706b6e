from dataclasses import dataclass, field

from tb_ui.tui.system.models import TableModel
from tb_ui.tui.system.protocols import Presenter


@dataclass
class HeadlessUI:
    """UI that records output instead of rendering it (CI and tests)."""

    recorded_tables: list[TableModel] = field(default_factory=list)
    recorded_messages: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.tables = _HeadlessTablePresenter(self)
        self.present = Presenter(_HeadlessSink(self))


class _HeadlessTablePresenter:
    def __init__(self, ui: HeadlessUI):
        self._ui = ui

    def show(self, table: TableModel) -> None:
        self._ui.recorded_tables.append(table)
        print(table.title)
        print("\t".join(table.columns))
        for row in table.rows:
            print("\t".join(str(cell) for cell in row))


class _HeadlessSink:
    def __init__(self, ui: HeadlessUI):
        self._ui = ui

    def emit(self, level: str, message: str) -> None:
        line = f"{level.upper()}: {message}"
        self._ui.recorded_messages.append(line)
        print(line)

    def emit_panel(self, message: str, title: str | None, border_style: str | None) -> None:
        self.emit("info", f"{title}: {message}" if title else message)
