"""Structured events for run progress tracking."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable


@dataclass
class RunEvent:
    """A structured event emitted while the matrix executes."""

    run_id: str
    unit: str
    index: int
    total: int
    status: str  # running | success | failed | skipped
    message: str = ""
    timestamp: float = 0.0
    type: str = "status"


EventCallback = Callable[[RunEvent], None]
