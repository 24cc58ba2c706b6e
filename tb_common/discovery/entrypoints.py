"""Entry-point discovery for externally packaged workloads."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Any, Callable, Iterable


logger = logging.getLogger(__name__)


def discover_entrypoints(
    groups: Iterable[str],
) -> dict[str, importlib.metadata.EntryPoint]:
    """Collect entry points by name without importing them."""
    pending: dict[str, importlib.metadata.EntryPoint] = {}
    for group in groups:
        try:
            eps = importlib.metadata.entry_points().select(group=group)
        except Exception as exc:
            logger.debug("Failed to read entry points for group %s: %s", group, exc)
            eps = ()
        for entry_point in eps:
            pending.setdefault(entry_point.name, entry_point)
    return pending


def load_entrypoint(
    entry_point: importlib.metadata.EntryPoint,
    register: Callable[[Any], None],
) -> bool:
    """Import one entry point and hand the loaded object to ``register``.

    Returns False when the suite could not be loaded; the registry keeps
    working with the remaining suites.
    """
    try:
        loaded = entry_point.load()
    except ImportError as exc:
        logger.warning(
            "Skipping workload %s due to missing dependency: %s", entry_point.name, exc
        )
        return False
    except Exception as exc:
        logger.warning("Failed to load workload %s: %s", entry_point.name, exc)
        return False
    # Entry points may name a class or a factory instead of an instance.
    if isinstance(loaded, type) or (
        callable(loaded) and not hasattr(loaded, "enumerate")
    ):
        loaded = loaded()
    register(loaded)
    return True
