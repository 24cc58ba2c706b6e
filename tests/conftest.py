from collections import defaultdict
from pathlib import Path

import pytest
from rich.console import Console
from rich.table import Table

from tb_common.errors import BuildError
from tb_runner.api import ArtifactHandle, ResolvedSource, Workload
from tb_runner.models.run import TimingMethod
from tb_runner.models.version import Branch, Local


def pytest_terminal_summary(terminalreporter, exitstatus, config):
    """
    Custom hook to print statistics by marker at the end of the test session.
    """
    _ = (exitstatus, config)
    known_markers = {"unit_common", "unit_runner", "unit_share", "unit_ui"}
    marker_stats = defaultdict(lambda: {"passed": 0, "failed": 0, "skipped": 0, "total": 0, "duration": 0.0})

    for outcome in ["passed", "failed", "skipped"]:
        for report in terminalreporter.stats.get(outcome, []):
            if report.when == "call" or (report.when == "setup" and report.outcome == "skipped"):
                for marker in known_markers:
                    if marker in report.keywords:
                        stats = marker_stats[marker]
                        stats[outcome] += 1
                        stats["total"] += 1
                        stats["duration"] += getattr(report, "duration", 0.0)

    if not marker_stats:
        return

    table = Table(title="Test Statistics by Marker", show_header=True, header_style="bold magenta")
    table.add_column("Marker", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Passed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Duration (s)", justify="right", style="blue")
    for marker in sorted(marker_stats):
        stats = marker_stats[marker]
        table.add_row(
            marker,
            str(stats["total"]),
            str(stats["passed"]),
            str(stats["failed"]),
            str(stats["skipped"]),
            f"{stats['duration']:.2f}",
        )
    Console().print("\n")
    Console().print(table)


class FakeWorkload(Workload):
    """Workload returning scripted samples (or raising) per case."""

    def __init__(self, name="unary", cases=None, sample=0.01, fail=None, unsupported=(), timing=TimingMethod.SYSTEM):
        self.timing = timing
        self._name = name
        self._cases = list(cases or [name])
        self.sample = sample
        self.fail = fail
        self.unsupported = set(unsupported)
        self.calls = []

    @property
    def name(self):
        return self._name

    @property
    def timing_method(self):
        return self.timing

    def enumerate(self):
        return list(self._cases)

    def supports(self, backend, dtype):
        return (backend, dtype) not in self.unsupported

    def run(self, case_id, backend, dtype, artifact):
        self.calls.append((case_id, backend, dtype, artifact.source.identity))
        if self.fail is not None:
            raise self.fail
        return self.sample(case_id) if callable(self.sample) else self.sample


class FakeResolver:
    """Resolver mapping each spec to a deterministic source."""

    def __init__(self, errors=None):
        self.errors = errors or {}
        self.calls = []

    def resolve(self, spec, default_local_dir=None):
        self.calls.append(spec)
        if spec in self.errors:
            raise self.errors[spec]
        if isinstance(spec, Local):
            return ResolvedSource(spec=spec, location=str(default_local_dir or "/src"), revision="abc", identity="abc")
        identity = f"sha-{spec.label}"
        return ResolvedSource(spec=spec, location="https://example.invalid/repo.git", revision=identity, identity=identity)


class FakeBuilder:
    """Builder recording each build; optional failures keyed by version label."""

    def __init__(self, fail_labels=()):
        self.fail_labels = set(fail_labels)
        self.builds = []

    def build(self, source, backend, dtype):
        self.builds.append((source.label, backend.name, dtype))
        if source.label in self.fail_labels:
            raise BuildError("compile error", stderr_excerpt="error[E0308]: mismatched types")
        return ArtifactHandle(source=source, backend=backend.name, dtype=dtype, workdir=Path("/tmp"))


@pytest.fixture
def fake_workload():
    return FakeWorkload()


@pytest.fixture
def fake_resolver():
    return FakeResolver()


@pytest.fixture
def fake_builder():
    return FakeBuilder()


@pytest.fixture
def branch_source():
    spec = Branch("main")
    return ResolvedSource(spec=spec, location="https://example.invalid/repo.git", revision="f" * 40, identity="f" * 40)


@pytest.fixture
def workload_factory():
    return FakeWorkload


@pytest.fixture
def builder_factory():
    return FakeBuilder


@pytest.fixture
def resolver_factory():
    return FakeResolver
