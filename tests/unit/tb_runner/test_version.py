from pathlib import Path

import pytest

from tb_common.errors import ConfigurationError
from tb_runner.models.version import (
    Branch,
    Commit,
    Local,
    Published,
    SourceKind,
    format_version_spec,
    parse_version_spec,
)

pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("0.18.0", Published("0.18.0")),
        ("v0.17.1", Published("0.17.1")),
        ("0.19.0-pre.2", Published("0.19.0-pre.2")),
        ("main", Branch("main")),
        ("feature/fusion", Branch("feature/fusion")),
        ("a1b2c3d", Commit("a1b2c3d")),
        ("A1B2C3D4E5", Commit("a1b2c3d4e5")),
        ("local", Local()),
        ("/opt/burn", Local(Path("/opt/burn"))),
        ("branch:0.18.0", Branch("0.18.0")),
        ("release:0.16.0", Published("0.16.0")),
        ("commit:deadbeef", Commit("deadbeef")),
        ("path:checkouts/burn", Local(Path("checkouts/burn"))),
    ],
)
def test_parse_version_spec(raw, expected):
    assert parse_version_spec(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "release:not-a-version", "commit:xyz"])
def test_parse_version_spec_rejects(raw):
    with pytest.raises(ConfigurationError):
        parse_version_spec(raw)


@pytest.mark.parametrize(
    "spec",
    [Published("0.18.0"), Branch("deadbeef"), Commit("a" * 40), Local(), Local(Path("/src/burn"))],
)
def test_format_version_spec_is_parseable(spec):
    assert parse_version_spec(format_version_spec(spec)) == spec


def test_labels_and_kinds():
    assert Commit("a" * 40).label == "a" * 12
    assert Local().label == "local"
    assert Published("0.18.0").kind is SourceKind.PUBLISHED
    assert Branch("main").kind is SourceKind.BRANCH
