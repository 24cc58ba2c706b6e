"""Release metadata lookup against a crates.io-style registry API."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib import error, parse, request

from tb_common.errors import ResolveError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReleaseInfo:
    crate: str
    version: str
    checksum: str | None
    yanked: bool


@dataclass
class ReleaseIndex:
    """Read-only registry client with retry support."""

    base_url: str
    user_agent: str = "tensorbench"
    timeout_seconds: float = 10.0
    max_retries: int = 2
    backoff_base: float = 0.5
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        parsed = parse.urlparse(self.base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"Release index must be an http(s) URL, got: {self.base_url}")
        self.base_url = self.base_url.rstrip("/")

    def lookup(self, crate: str, version: str) -> ReleaseInfo | None:
        """Return release metadata, or None when the release does not exist."""
        path = f"/{parse.quote(crate, safe='')}/{parse.quote(version, safe='')}"
        status, data = self._request(path, expected_statuses={200, 404})
        if status == 404 or not isinstance(data, dict):
            return None
        meta = data.get("version") or {}
        if not isinstance(meta, dict) or not meta.get("num"):
            return None
        return ReleaseInfo(
            crate=crate,
            version=str(meta["num"]),
            checksum=meta.get("checksum"),
            yanked=bool(meta.get("yanked", False)),
        )

    def _request(
        self, path: str, expected_statuses: set[int]
    ) -> tuple[int, dict[str, Any] | None]:
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json", "User-Agent": self.user_agent}
        for attempt in range(self.max_retries + 1):
            try:
                req = request.Request(url, headers=headers, method="GET")
                with request.urlopen(req, timeout=self.timeout_seconds) as resp:  # nosec B310
                    status = resp.status
                    body = resp.read().decode("utf-8")
                if status in expected_statuses:
                    return status, _parse_json(body)
                raise ResolveError(
                    f"Release index returned {status}", context={"url": url, "status": status}
                )
            except error.HTTPError as exc:
                if exc.code in expected_statuses:
                    return exc.code, None
                if exc.code >= 500 and attempt < self.max_retries:
                    self._sleep_backoff(attempt)
                    continue
                raise ResolveError(
                    f"Release index returned {exc.code}",
                    context={"url": url, "status": exc.code},
                    cause=exc,
                ) from exc
            except error.URLError as exc:
                if attempt < self.max_retries:
                    self._sleep_backoff(attempt)
                    continue
                raise ResolveError(
                    f"Release index unreachable: {exc.reason}", context={"url": url}, cause=exc
                ) from exc
        raise ResolveError("Release index request failed after retries", context={"url": url})

    def _sleep_backoff(self, attempt: int) -> None:
        delay = self.backoff_base * (self.backoff_factor ** attempt)
        if delay > 0:
            time.sleep(delay)


def _parse_json(body: str) -> dict[str, Any] | None:
    if not body:
        return None
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        logger.debug("Release index returned non-JSON body")
        return None
    return parsed if isinstance(parsed, dict) else None
