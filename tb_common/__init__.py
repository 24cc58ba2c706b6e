"""Shared helpers for tensorbench."""

from tb_common.api import TBError, configure_logging

__all__ = ["TBError", "configure_logging"]
