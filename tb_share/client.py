"""Client publishing finished reports to the benchmark server."""

from __future__ import annotations

import http.client
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable
from urllib import error, parse, request

from tb_common.errors import AuthError, AuthFailure, ConfigurationError, UploadError
from tb_runner.models.config import ShareConfig
from tb_runner.services.aggregator import Report
from tb_share.auth import DeviceCodeFlow, PromptCallback
from tb_share.token_store import AuthToken, TokenStore

logger = logging.getLogger(__name__)

UPLOAD_PATH = "benchmarks"


def _validate_http_url(url: str, label: str) -> str:
    parsed = parse.urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigurationError(f"{label} must be an http(s) URL, got: {url}", context={"url": url})
    return url


@dataclass(frozen=True)
class UploadResult:
    run_id: str
    status: int
    url: str
    response: dict[str, Any] | None = None


class SharingClient:
    """Authenticates users and uploads whole reports.

    A report always travels in a single request; retries resend it from
    scratch.
    """

    def __init__(
        self,
        *,
        server_url: str,
        store: TokenStore,
        flow_factory: Callable[[], DeviceCodeFlow] | None = None,
        prompt: PromptCallback | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        backoff_factor: float = 2.0,
        user_agent: str = "tensorbench",
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        base = _validate_http_url(server_url, "Server URL")
        self.upload_url = parse.urljoin(base if base.endswith("/") else f"{base}/", UPLOAD_PATH)
        self.store = store
        self.flow_factory = flow_factory
        self.prompt = prompt
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_factor = backoff_factor
        self.user_agent = user_agent
        self._sleep = sleep
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: ShareConfig, prompt: PromptCallback | None = None) -> "SharingClient":
        def make_flow() -> DeviceCodeFlow:
            if not config.client_id:
                raise ConfigurationError(
                    "No OAuth client id configured (set share.client_id or TB_AUTH_CLIENT_ID)"
                )
            return DeviceCodeFlow(
                client_id=config.client_id,
                device_code_url=config.device_code_url,
                token_url=config.token_url,
                scope=config.scope,
                timeout_seconds=config.login_timeout_seconds,
            )

        return cls(
            server_url=config.server_url,
            store=TokenStore(config.token_path),
            flow_factory=make_flow,
            prompt=prompt,
            timeout_seconds=config.timeout_seconds,
            max_retries=config.max_retries,
        )

    def current_token(self) -> AuthToken | None:
        """Return the stored token when it is still valid."""
        with self._lock:
            token = self.store.load()
        if token is None or token.is_expired():
            return None
        return token

    def authenticate(self) -> AuthToken:
        """Run the device-code login and persist the resulting token."""
        if self.flow_factory is None:
            raise ConfigurationError("No login flow configured")
        with self._lock:
            flow = self.flow_factory()
            token = flow.run(self.prompt)
            self.store.save(token)
        logger.info("Logged in; token stored at %s", self.store.path)
        return token

    def refresh(self, token: AuthToken) -> AuthToken:
        """Trade the refresh token for a new access token and persist it."""
        if self.flow_factory is None:
            raise ConfigurationError("No login flow configured")
        with self._lock:
            refreshed = self.flow_factory().refresh(token)
            self.store.save(refreshed)
        return refreshed

    def logout(self) -> bool:
        with self._lock:
            return self.store.clear()

    def share(self, report: Report) -> UploadResult:
        """Upload with the stored token, renewing it at most once.

        An expired or rejected token is refreshed when a refresh token is
        stored; the device login runs only when that is not possible.
        """
        with self._lock:
            stored = self.store.load()
        if stored is None:
            token = self.authenticate()
        elif stored.is_expired():
            token = self._renew(stored)
        else:
            token = stored
        try:
            return self.upload(report, token)
        except AuthError as exc:
            if exc.reason is not AuthFailure.EXPIRED:
                raise
            logger.info("Token rejected; renewing it")
            return self.upload(report, self._renew(token))

    def _renew(self, token: AuthToken) -> AuthToken:
        if token.refresh_token:
            try:
                return self.refresh(token)
            except AuthError as exc:
                logger.warning("Token refresh failed (%s); logging in again", exc)
        return self.authenticate()

    def upload(self, report: Report, token: AuthToken) -> UploadResult:
        report_path = str(report.local_path) if report.local_path else None
        if token.is_expired():
            raise AuthError(
                "Token expired; log in again before sharing",
                reason=AuthFailure.EXPIRED,
                context={"run_id": report.run_id, "report_path": report_path},
            )
        body = json.dumps(report.to_payload()).encode("utf-8")
        headers = {
            "Accept": "application/json",
            "Authorization": token.authorization,
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        for attempt in range(self.max_retries + 1):
            req = request.Request(self.upload_url, data=body, headers=headers, method="POST")
            try:
                with request.urlopen(req, timeout=self.timeout_seconds) as resp:  # nosec B310
                    status = resp.status
                    raw = resp.read().decode("utf-8")
            except error.HTTPError as exc:
                if exc.code == 401:
                    with self._lock:
                        self.store.clear()
                    raise AuthError(
                        "Server rejected the token",
                        reason=AuthFailure.EXPIRED,
                        context={"run_id": report.run_id, "report_path": report_path},
                        cause=exc,
                    ) from exc
                if exc.code >= 500 and attempt < self.max_retries:
                    logger.warning("Upload attempt %d failed with %s; retrying", attempt + 1, exc.code)
                    self._sleep_backoff(attempt)
                    continue
                raise UploadError(
                    f"Server rejected the report with status {exc.code}",
                    status=exc.code,
                    report_path=report_path,
                    context={"run_id": report.run_id, "url": self.upload_url},
                    cause=exc,
                ) from exc
            except error.URLError as exc:
                if attempt < self.max_retries:
                    logger.warning("Upload attempt %d failed: %s; retrying", attempt + 1, exc.reason)
                    self._sleep_backoff(attempt)
                    continue
                raise UploadError(
                    f"Benchmark server unreachable: {exc.reason}",
                    report_path=report_path,
                    context={"run_id": report.run_id, "url": self.upload_url},
                    cause=exc,
                ) from exc
            except (TimeoutError, ConnectionError, http.client.HTTPException) as exc:
                # Raised while waiting for or reading the response; urllib does not wrap these
                if attempt < self.max_retries:
                    logger.warning("Upload attempt %d failed: %r; retrying", attempt + 1, exc)
                    self._sleep_backoff(attempt)
                    continue
                raise UploadError(
                    f"Connection to the benchmark server failed: {exc!r}",
                    report_path=report_path,
                    context={"run_id": report.run_id, "url": self.upload_url},
                    cause=exc,
                ) from exc
            logger.info("Shared report %s (%s)", report.run_id, status)
            return UploadResult(
                run_id=report.run_id, status=status, url=self.upload_url, response=_parse_json(raw)
            )
        raise UploadError(
            "Upload failed after retries",
            report_path=report_path,
            context={"run_id": report.run_id, "url": self.upload_url},
        )

    def _sleep_backoff(self, attempt: int) -> None:
        delay = self.backoff_base * (self.backoff_factor ** attempt)
        if delay > 0:
            self._sleep(delay)


def _parse_json(raw: str) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
