"""Built-in bench suites shipped with the library."""

import importlib
import logging
from pathlib import Path
from typing import Any, List

logger = logging.getLogger(__name__)
_PACKAGE_ROOT = __package__.rsplit(".", 1)[0]
_PLUGIN_PACKAGE = f"{_PACKAGE_ROOT}.plugins"


def builtin_workloads() -> List[Any]:
    """
    Return built-in workloads via dynamic discovery.
    Scans `plugins/*/plugin.py` for `get_plugins()`, `PLUGINS` or `PLUGIN`.
    """
    workloads: List[Any] = []
    plugins_path = Path(__file__).resolve().parent.parent / "plugins"
    if not plugins_path.exists():
        return workloads
    for item in sorted(plugins_path.iterdir()):
        if not (item.is_dir() and (item / "plugin.py").exists()):
            continue
        module_name = f"{_PLUGIN_PACKAGE}.{item.name}.plugin"
        try:
            mod = importlib.import_module(module_name)
        except ImportError as e:
            logger.debug(f"Skipping plugin {module_name}: {e}")
            continue
        if callable(getattr(mod, "get_plugins", None)):
            discovered = mod.get_plugins()
        elif hasattr(mod, "PLUGINS"):
            discovered = mod.PLUGINS
        elif hasattr(mod, "PLUGIN"):
            discovered = mod.PLUGIN
        else:
            continue
        if isinstance(discovered, list):
            workloads.extend(discovered)
        else:
            workloads.append(discovered)
    return workloads
