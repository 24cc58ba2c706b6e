"""Runner facade for tensorbench.

Re-exports the runner-facing types; see ``tb_runner.api`` for the full list.
"""

from tb_runner.api import (
    BenchmarkConfig,
    LocalRunner,
    MatrixExecutor,
    Report,
    RunEvent,
    Workload,
    WorkloadRegistry,
)

__all__ = [
    "BenchmarkConfig",
    "LocalRunner",
    "MatrixExecutor",
    "Report",
    "RunEvent",
    "Workload",
    "WorkloadRegistry",
]
