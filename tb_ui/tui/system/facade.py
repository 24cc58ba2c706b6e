from rich.console import Console

from tb_ui.tui.system.components.presenter import RichPresenter
from tb_ui.tui.system.components.table import RichTablePresenter
from tb_ui.tui.system.protocols import Presenter, TablePresenter


class TUI:
    def __init__(self, console: Console | None = None):
        self._console = console or Console()
        self.tables: TablePresenter = RichTablePresenter(self._console)
        self.present: Presenter = RichPresenter(self._console)
