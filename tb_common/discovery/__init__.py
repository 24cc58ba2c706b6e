"""Plugin discovery helpers."""

from tb_common.discovery.entrypoints import discover_entrypoints, load_entrypoint

__all__ = ["discover_entrypoints", "load_entrypoint"]
