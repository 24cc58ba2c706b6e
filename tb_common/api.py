"""Public API surface for tb_common."""

from tb_common.errors import (
    AuthError,
    AuthFailure,
    BuildError,
    ConfigurationError,
    PathNotFound,
    RefNotFound,
    ResolveError,
    TBError,
    UnitTimeoutError,
    UnknownVersion,
    UploadError,
    WorkloadError,
)
from tb_common.logging import configure_logging

__all__ = [
    "AuthError",
    "AuthFailure",
    "BuildError",
    "ConfigurationError",
    "PathNotFound",
    "RefNotFound",
    "ResolveError",
    "TBError",
    "UnitTimeoutError",
    "UnknownVersion",
    "UploadError",
    "WorkloadError",
    "configure_logging",
]
