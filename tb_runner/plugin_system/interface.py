from abc import ABC, abstractmethod
from typing import List, Optional

from tb_runner.models.run import ArtifactHandle, TimingMethod


class Workload(ABC):
    """
    Abstract base class for all bench suites.

    A workload encapsulates:
    1. Metadata (name, description)
    2. Case enumeration
    3. Execution of a single case against a built artifact

    The executor only depends on this contract; it never inspects how a
    workload produces its timings.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for the suite (e.g., 'matmul')."""
        pass

    @property
    def description(self) -> str:
        """Human-readable description."""
        return ""

    def enumerate(self) -> List[str]:
        """Return the case ids of this suite; single-case suites return their name."""
        return [self.name]

    @abstractmethod
    def run(
        self, case_id: str, backend: str, dtype: str, artifact: ArtifactHandle
    ) -> Optional[float]:
        """
        Execute one repetition of a case.

        Returns the measured duration in seconds, or None to let the caller
        time the call with the wall clock. Raises on failure.
        """
        pass

    @property
    def timing_method(self) -> TimingMethod:
        """How the durations returned by ``run`` are measured."""
        return TimingMethod.SYSTEM

    def supports(self, backend: str, dtype: str) -> bool:
        """Return False for (backend, dtype) pairs this suite cannot run."""
        return True

    def get_required_local_tools(self) -> List[str]:
        """Return command-line tools needed to run this suite."""
        return []
