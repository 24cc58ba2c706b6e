"""Shared error taxonomy for tensorbench."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping


def _normalize_context_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return normalize_context(value)
    if isinstance(value, list):
        return [_normalize_context_value(item) for item in value]
    if isinstance(value, tuple):
        return [_normalize_context_value(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def normalize_context(context: Mapping[str, Any]) -> dict[str, Any]:
    """Return a JSON-friendly copy of an error context mapping."""
    return {key: _normalize_context_value(val) for key, val in context.items()}


class TBError(Exception):
    """Base error type for typed failure handling."""

    def __init__(
        self,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.context = normalize_context(context or {})
        if cause is not None:
            self.__cause__ = cause

    @property
    def error_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.error_type, "message": str(self), "context": self.context}


class ConfigurationError(TBError):
    """Failure due to invalid configuration or selection."""


class ResolveError(TBError):
    """A version specifier cannot be mapped to source code."""


class UnknownVersion(ResolveError):
    """A published release does not exist in the release index."""


class RefNotFound(ResolveError):
    """A branch or commit is unknown to the configured remote."""


class PathNotFound(ResolveError):
    """A local source directory does not exist."""


class BuildError(TBError):
    """Compilation/build failure, reported with a diagnostic excerpt."""

    def __init__(
        self,
        message: str,
        *,
        stderr_excerpt: str = "",
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context=context, cause=cause)
        self.stderr_excerpt = stderr_excerpt

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["stderr_excerpt"] = self.stderr_excerpt
        return payload


class WorkloadError(TBError):
    """A benchmark case crashed or returned an invalid timing."""


class UnitTimeoutError(TBError):
    """A single run unit exceeded its time allowance."""


class AuthFailure(str, Enum):
    """Why a credential could not be obtained or used."""

    EXPIRED = "expired"
    DENIED = "denied"
    TIMEOUT = "timeout"
    INVALID = "invalid"


class AuthError(TBError):
    """Expired, denied or timed-out credential."""

    def __init__(
        self,
        message: str,
        *,
        reason: AuthFailure,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        merged = {"reason": reason, **(context or {})}
        super().__init__(message, context=merged, cause=cause)
        self.reason = reason


class UploadError(TBError):
    """Transport failure or server rejection while sharing a report."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        report_path: str | None = None,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        merged = {"status": status, "report_path": report_path, **(context or {})}
        super().__init__(message, context=merged, cause=cause)
        self.status = status
        self.report_path = report_path


def error_to_payload(error: TBError) -> dict[str, Any]:
    """Convert a TBError to a measurement/report payload."""
    return {
        "error_type": error.error_type,
        "error": str(error),
        "error_context": error.context,
    }
