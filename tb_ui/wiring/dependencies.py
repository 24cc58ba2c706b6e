from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from tb_runner.api import BenchmarkConfig, LocalRunner, ShareConfig, WorkloadRegistry, create_registry
from tb_share.api import DeviceCode, SharingClient
from tb_ui.tui.system.protocols import UI

DEFAULT_CONFIG_FILES = ("tensorbench.yaml", "tensorbench.yml", "tensorbench.json")


def load_config(path: Optional[Path], cwd: Optional[Path] = None) -> BenchmarkConfig:
    """Load the explicit config, a default file from ``cwd``, or defaults; then env overrides."""
    if path is None:
        base = cwd or Path.cwd()
        path = next((base / name for name in DEFAULT_CONFIG_FILES if (base / name).exists()), None)
    config = BenchmarkConfig.load(path) if path else BenchmarkConfig()
    return config.with_env_overrides()


@dataclass
class UIContext:
    """Container for UI services and state, initialized lazily."""

    headless: bool = False

    _ui: Optional[UI] = None
    runner_factory: Callable[..., LocalRunner] = LocalRunner
    registry_factory: Callable[[], WorkloadRegistry] = create_registry
    sharing_client_factory: Optional[Callable[[ShareConfig], SharingClient]] = None
    which: Callable[[str], Optional[str]] = shutil.which

    @property
    def ui(self) -> UI:
        if self._ui is None:
            if self.headless:
                from tb_ui.tui.system.headless import HeadlessUI

                self._ui = HeadlessUI()
            else:
                from tb_ui.tui.system.facade import TUI

                self._ui = TUI()
        return self._ui

    @ui.setter
    def ui(self, value: UI):
        self._ui = value

    def prompt_device_code(self, code: DeviceCode) -> None:
        self.ui.present.panel(
            f"Open {code.verification_uri} and enter the code {code.user_code}",
            title="Login required",
        )

    def sharing_client(self, config: ShareConfig) -> SharingClient:
        if self.sharing_client_factory is not None:
            return self.sharing_client_factory(config)
        return SharingClient.from_config(config, prompt=self.prompt_device_code)
