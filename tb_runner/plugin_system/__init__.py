"""Bench suite contract and discovery."""

from .interface import Workload
from .registry import ENTRYPOINT_GROUP, WorkloadRegistry, create_registry

__all__ = [
    "ENTRYPOINT_GROUP",
    "Workload",
    "WorkloadRegistry",
    "create_registry",
]
