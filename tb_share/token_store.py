"""Persistence of sharing credentials."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_PATH = Path.home() / ".cache" / "tensorbench" / "token.json"
EXPIRY_SKEW = timedelta(seconds=30)


@dataclass(frozen=True)
class AuthToken:
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime | None = None
    refresh_token: str | None = None
    scope: str = ""

    def is_expired(self, now: datetime | None = None) -> bool:
        """True once the token is within ``EXPIRY_SKEW`` of its expiry."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now + EXPIRY_SKEW >= self.expires_at

    @property
    def authorization(self) -> str:
        return f"Bearer {self.access_token}"

    @classmethod
    def from_response(cls, data: dict[str, Any], now: datetime | None = None) -> "AuthToken":
        """Build a token from an OAuth token endpoint response."""
        now = now or datetime.now(timezone.utc)
        expires_in = data.get("expires_in")
        return cls(
            access_token=str(data["access_token"]),
            token_type=str(data.get("token_type") or "bearer"),
            expires_at=now + timedelta(seconds=float(expires_in)) if expires_in else None,
            refresh_token=data.get("refresh_token"),
            scope=str(data.get("scope") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "refresh_token": self.refresh_token,
            "scope": self.scope,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthToken":
        expires_at = data.get("expires_at")
        return cls(
            access_token=str(data["access_token"]),
            token_type=str(data.get("token_type") or "bearer"),
            expires_at=_as_utc(datetime.fromisoformat(expires_at)) if expires_at else None,
            refresh_token=data.get("refresh_token"),
            scope=str(data.get("scope") or ""),
        )


def _as_utc(value: datetime) -> datetime:
    """Naive timestamps in a hand-edited token file are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TokenStore:
    """JSON file holding one token, readable only by its owner."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or DEFAULT_TOKEN_PATH
        self._lock = threading.Lock()

    def load(self) -> AuthToken | None:
        with self._lock:
            if not self.path.exists():
                return None
            try:
                return AuthToken.from_dict(json.loads(self.path.read_text()))
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.warning("Ignoring unreadable token file %s: %s", self.path, exc)
                return None

    def save(self, token: AuthToken) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(".tmp")
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as handle:
                json.dump(token.to_dict(), handle)
            os.chmod(tmp_path, 0o600)
            tmp_path.replace(self.path)
        logger.debug("Stored token at %s", self.path)

    def clear(self) -> bool:
        """Remove the stored token; return True when a file was deleted."""
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                return False
        logger.info("Removed stored token %s", self.path)
        return True
