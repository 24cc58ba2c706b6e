"""
Registry and discovery utilities for bench suites.
"""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Any, Dict, Iterable, Optional

from tb_common.discovery import discover_entrypoints, load_entrypoint

from .interface import Workload


logger = logging.getLogger(__name__)
ENTRYPOINT_GROUP = "tensorbench.workloads"


class WorkloadRegistry:
    """In-memory registry of built-in and entry-point workloads."""

    def __init__(self, workloads: Optional[Iterable[Any]] = None, discover: bool = True):
        self._workloads: Dict[str, Workload] = {}
        self._pending_entrypoints: Dict[str, importlib.metadata.EntryPoint] = {}
        if workloads:
            for workload in workloads:
                self.register(workload)
        if discover:
            self._discover_entrypoint_plugins()

    def register(self, workload: Any) -> None:
        """Register a new workload; later registrations replace earlier ones."""
        if isinstance(workload, Workload):
            self._workloads[workload.name] = workload
        elif hasattr(workload, "name") and hasattr(workload, "run") and hasattr(workload, "enumerate"):
            # Duck-typed suites from packages that do not subclass Workload
            self._workloads[workload.name] = workload
        else:
            raise TypeError(f"Unknown workload type: {type(workload)}")

    def get(self, name: str) -> Workload:
        if name not in self._workloads and name in self._pending_entrypoints:
            self._load_entrypoint(name)
        if name not in self._workloads:
            raise KeyError(f"Workload '{name}' not found")
        return self._workloads[name]

    def __contains__(self, name: str) -> bool:
        return name in self._workloads or name in self._pending_entrypoints

    def names(self) -> list[str]:
        return sorted(set(self._workloads) | set(self._pending_entrypoints))

    def available(self, load_entrypoints: bool = False) -> Dict[str, Workload]:
        """
        Return available workloads.

        When load_entrypoints is True, pending entry-point suites are resolved and
        registered; otherwise only already-registered suites are returned.
        """
        if load_entrypoints:
            for name in list(self._pending_entrypoints):
                self._load_entrypoint(name)
        return dict(self._workloads)

    def _discover_entrypoint_plugins(self) -> None:
        """Collect entry points without importing them. Loaded on demand."""
        discovered = discover_entrypoints([ENTRYPOINT_GROUP])
        for name, entry_point in discovered.items():
            if name not in self._workloads:
                self._pending_entrypoints[name] = entry_point

    def _load_entrypoint(self, name: str) -> None:
        entry_point = self._pending_entrypoints.pop(name, None)
        if not entry_point:
            return
        load_entrypoint(entry_point, self.register)


def create_registry(discover: bool = True) -> WorkloadRegistry:
    """Registry preloaded with the built-in suites."""
    from .builtin import builtin_workloads

    return WorkloadRegistry(builtin_workloads(), discover=discover)
