"""Tests for shared error helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from tb_common.errors import (
    AuthError,
    AuthFailure,
    BuildError,
    ConfigurationError,
    RefNotFound,
    ResolveError,
    TBError,
    UploadError,
    WorkloadError,
    error_to_payload,
)


pytestmark = [pytest.mark.unit, pytest.mark.unit_common]


def test_error_to_payload_normalizes_context() -> None:
    err = WorkloadError(
        "boom",
        context={
            "path": Path("/tmp/test"),
            "count": 3,
            "nested": {"value": Path("nested")},
            "items": (Path("a"), "b"),
        },
    )
    payload = error_to_payload(err)
    assert payload["error_type"] == "WorkloadError"
    assert payload["error"] == "boom"
    assert payload["error_context"]["path"].endswith("test")
    assert payload["error_context"]["count"] == 3
    assert payload["error_context"]["nested"]["value"] == "nested"
    assert payload["error_context"]["items"] == ["a", "b"]


def test_error_keeps_cause() -> None:
    cause = ValueError("bad")
    err = ConfigurationError("invalid", context={"key": "repetitions"}, cause=cause)
    assert isinstance(err, TBError)
    assert err.__cause__ is cause
    assert err.to_dict() == {
        "type": "ConfigurationError",
        "message": "invalid",
        "context": {"key": "repetitions"},
    }


def test_resolve_error_hierarchy() -> None:
    err = RefNotFound("no such branch", context={"branch": "nope"})
    assert isinstance(err, ResolveError)
    assert err.error_type == "RefNotFound"


def test_build_error_carries_excerpt() -> None:
    err = BuildError("cargo failed", stderr_excerpt="error: linker `cc` not found")
    assert err.to_dict()["stderr_excerpt"] == "error: linker `cc` not found"


def test_auth_error_reason_in_context() -> None:
    err = AuthError("expired", reason=AuthFailure.EXPIRED)
    assert err.reason is AuthFailure.EXPIRED
    assert err.context["reason"] == "expired"


def test_upload_error_keeps_report_path() -> None:
    err = UploadError("rejected", status=422, report_path="/tmp/run/report.json")
    assert err.status == 422
    assert err.report_path == "/tmp/run/report.json"
    assert err.context["report_path"] == "/tmp/run/report.json"
