"""Version specifiers and the sources they resolve to.

A version specifier is a closed set of variants. Each variant is a small
frozen dataclass; resolution lives in ``tb_runner.engine.resolver`` as one
function per variant.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union

from tb_common.errors import ConfigurationError


SEMVER_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?$")
COMMIT_RE = re.compile(r"^[0-9a-fA-F]{7,40}$")
LOCAL_KEYWORD = "local"


class SourceKind(str, Enum):
    PUBLISHED = "published"
    BRANCH = "branch"
    COMMIT = "commit"
    LOCAL = "local"


@dataclass(frozen=True)
class Published:
    version: str

    @property
    def kind(self) -> SourceKind:
        return SourceKind.PUBLISHED

    @property
    def label(self) -> str:
        return self.version


@dataclass(frozen=True)
class Branch:
    name: str

    @property
    def kind(self) -> SourceKind:
        return SourceKind.BRANCH

    @property
    def label(self) -> str:
        return self.name


@dataclass(frozen=True)
class Commit:
    hash: str

    @property
    def kind(self) -> SourceKind:
        return SourceKind.COMMIT

    @property
    def label(self) -> str:
        return self.hash[:12]


@dataclass(frozen=True)
class Local:
    """Local checkout; ``path=None`` means the configured default directory."""

    path: Path | None = None

    @property
    def kind(self) -> SourceKind:
        return SourceKind.LOCAL

    @property
    def label(self) -> str:
        return LOCAL_KEYWORD if self.path is None else str(self.path)


VersionSpec = Union[Published, Branch, Commit, Local]


def parse_version_spec(text: str) -> VersionSpec:
    """Parse user input into a version specifier.

    Explicit prefixes (``release:``, ``branch:``, ``commit:``, ``path:``)
    take precedence over the heuristics.
    """
    raw = (text or "").strip()
    if not raw:
        raise ConfigurationError("Version specifier must not be empty")

    prefix, sep, rest = raw.partition(":")
    if sep and prefix in _PREFIXES and rest:
        return _PREFIXES[prefix](rest.strip())

    if raw == LOCAL_KEYWORD:
        return Local()
    if raw.startswith(("/", "./", "../", "~")):
        return Local(Path(raw).expanduser())
    if SEMVER_RE.match(raw):
        return _published(raw)
    if COMMIT_RE.match(raw):
        return Commit(raw.lower())
    return Branch(raw)


def _published(raw: str) -> Published:
    match = SEMVER_RE.match(raw)
    if not match:
        raise ConfigurationError(
            f"Invalid release version: {raw!r}", context={"version": raw}
        )
    return Published(raw[1:] if raw.startswith("v") else raw)


def _commit(raw: str) -> Commit:
    if not COMMIT_RE.match(raw):
        raise ConfigurationError(
            f"Invalid commit hash: {raw!r}", context={"commit": raw}
        )
    return Commit(raw.lower())


_PREFIXES = {
    "release": _published,
    "branch": Branch,
    "commit": _commit,
    "path": lambda raw: Local(Path(raw).expanduser()),
}


def format_version_spec(spec: VersionSpec) -> str:
    """Inverse of ``parse_version_spec`` using explicit prefixes."""
    if isinstance(spec, Published):
        return f"release:{spec.version}"
    if isinstance(spec, Branch):
        return f"branch:{spec.name}"
    if isinstance(spec, Commit):
        return f"commit:{spec.hash}"
    if spec.path is None:
        return LOCAL_KEYWORD
    return f"path:{spec.path}"


@dataclass(frozen=True)
class ResolvedSource:
    """Concrete, buildable source reference.

    ``location`` is a checkout path for local sources and the repository URL
    otherwise. ``revision`` is what gets checked out (commit hash or release
    tag); ``identity`` pins the exact code being measured.
    """

    spec: VersionSpec
    location: str
    revision: str
    identity: str

    @property
    def kind(self) -> SourceKind:
        return self.spec.kind

    @property
    def label(self) -> str:
        return self.spec.label

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.kind.value, self.location, self.identity)

    def to_dict(self) -> dict[str, str]:
        return {
            "kind": self.kind.value,
            "label": self.label,
            "location": self.location,
            "revision": self.revision,
            "identity": self.identity,
        }
