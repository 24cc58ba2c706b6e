"""Device-code login flow.

The flow is an explicit state machine: a login starts PENDING and ends in
exactly one of VERIFIED, EXPIRED, DENIED or TIMED_OUT. Polling is bounded by
both the server-side code expiry and a local timeout.
"""

from __future__ import annotations

import http.client
import json
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, NoReturn, Optional
from urllib import error, parse, request

from tb_common.errors import AuthError, AuthFailure
from tb_share.token_store import AuthToken

logger = logging.getLogger(__name__)

DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
REFRESH_GRANT_TYPE = "refresh_token"
SLOW_DOWN_INCREMENT = 5.0


class AuthState(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    EXPIRED = "expired"
    DENIED = "denied"
    TIMED_OUT = "timed_out"


_ALLOWED_TRANSITIONS = {
    AuthState.PENDING: {
        AuthState.VERIFIED,
        AuthState.EXPIRED,
        AuthState.DENIED,
        AuthState.TIMED_OUT,
    },
    AuthState.VERIFIED: set(),
    AuthState.EXPIRED: set(),
    AuthState.DENIED: set(),
    AuthState.TIMED_OUT: set(),
}

_FAILURE_FOR_STATE = {
    AuthState.EXPIRED: AuthFailure.EXPIRED,
    AuthState.DENIED: AuthFailure.DENIED,
    AuthState.TIMED_OUT: AuthFailure.TIMEOUT,
}


class AuthStateMachine:
    """Thread-safe login state tracker."""

    def __init__(self) -> None:
        self._state = AuthState.PENDING
        self._lock = threading.RLock()
        self._reason: Optional[str] = None

    @property
    def state(self) -> AuthState:
        with self._lock:
            return self._state

    @property
    def reason(self) -> Optional[str]:
        with self._lock:
            return self._reason

    def is_terminal(self) -> bool:
        with self._lock:
            return not _ALLOWED_TRANSITIONS[self._state]

    def transition(self, new_state: AuthState, reason: Optional[str] = None) -> AuthState:
        """Attempt a state transition; raise ValueError if invalid."""
        with self._lock:
            if new_state not in _ALLOWED_TRANSITIONS[self._state]:
                raise ValueError(f"Invalid auth transition {self._state.value} -> {new_state.value}")
            self._state = new_state
            self._reason = reason
            return self._state


@dataclass(frozen=True)
class DeviceCode:
    device_code: str
    user_code: str
    verification_uri: str
    expires_in: float
    interval: float


PromptCallback = Callable[[DeviceCode], None]


def _log_prompt(code: DeviceCode) -> None:
    logger.warning("Open %s and enter the code %s", code.verification_uri, code.user_code)


@dataclass
class DeviceCodeFlow:
    """Obtain a token through an OAuth device authorization grant."""

    client_id: str
    device_code_url: str
    token_url: str
    scope: str = ""
    timeout_seconds: float = 900.0
    http_timeout_seconds: float = 10.0
    user_agent: str = "tensorbench"
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic
    machine: AuthStateMachine = field(default_factory=AuthStateMachine)

    def run(self, prompt: PromptCallback | None = None) -> AuthToken:
        code = self.request_code()
        (prompt or _log_prompt)(code)
        return self.poll(code)

    def request_code(self) -> DeviceCode:
        data = self._post(self.device_code_url, {"client_id": self.client_id, "scope": self.scope})
        try:
            return DeviceCode(
                device_code=str(data["device_code"]),
                user_code=str(data["user_code"]),
                verification_uri=str(data.get("verification_uri") or data.get("verification_url")),
                expires_in=float(data.get("expires_in") or 900),
                interval=float(data.get("interval") or 5),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise AuthError(
                "Malformed device authorization response",
                reason=AuthFailure.INVALID,
                context={"url": self.device_code_url},
                cause=exc,
            ) from exc

    def poll(self, code: DeviceCode) -> AuthToken:
        """Poll the token endpoint until the login reaches a terminal state."""
        started = self.clock()
        local_deadline = started + self.timeout_seconds
        code_deadline = started + code.expires_in
        interval = code.interval
        form = {
            "client_id": self.client_id,
            "device_code": code.device_code,
            "grant_type": DEVICE_GRANT_TYPE,
        }
        while True:
            self._check_deadlines(code_deadline, local_deadline)
            self.sleep(interval)
            self._check_deadlines(code_deadline, local_deadline)
            try:
                data = self._post(self.token_url, form)
            except AuthError as exc:
                if not exc.context.get("transient"):
                    raise
                logger.warning("Token endpoint unreachable, retrying: %s", exc)
                continue

            if data.get("access_token"):
                token = AuthToken.from_response(data)
                self.machine.transition(AuthState.VERIFIED)
                logger.info("Device login verified")
                return token

            err = data.get("error")
            if err == "authorization_pending":
                continue
            if err == "slow_down":
                interval = float(data.get("interval") or interval + SLOW_DOWN_INCREMENT)
                logger.debug("Server asked to slow down; polling every %.0fs", interval)
                continue
            if err == "expired_token":
                self._fail(AuthState.EXPIRED, "Device code expired")
            if err == "access_denied":
                self._fail(AuthState.DENIED, "Login was denied")
            raise AuthError(
                f"Unexpected token endpoint response: {err or 'no token'}",
                reason=AuthFailure.INVALID,
                context={"error": err, "description": data.get("error_description")},
            )

    def refresh(self, token: AuthToken) -> AuthToken:
        """Exchange the refresh token for a new access token without user interaction.

        The state machine is not involved; a refresh that fails raises
        ``AuthError(EXPIRED)`` and the caller falls back to a device login.
        """
        if not token.refresh_token:
            raise AuthError("No refresh token stored", reason=AuthFailure.EXPIRED)
        data = self._post(
            self.token_url,
            {
                "client_id": self.client_id,
                "grant_type": REFRESH_GRANT_TYPE,
                "refresh_token": token.refresh_token,
            },
        )
        if not data.get("access_token"):
            raise AuthError(
                "Refresh token rejected",
                reason=AuthFailure.EXPIRED,
                context={"error": data.get("error"), "description": data.get("error_description")},
            )
        refreshed = AuthToken.from_response(data)
        if refreshed.refresh_token is None:
            # Omitted refresh token means the old one stays valid
            refreshed = replace(refreshed, refresh_token=token.refresh_token)
        logger.info("Access token refreshed")
        return refreshed

    def _check_deadlines(self, code_deadline: float, local_deadline: float) -> None:
        now = self.clock()
        if now >= code_deadline:
            self._fail(AuthState.EXPIRED, "Device code expired before verification")
        if now >= local_deadline:
            self._fail(AuthState.TIMED_OUT, f"Login not completed within {self.timeout_seconds:g}s")

    def _fail(self, state: AuthState, message: str) -> NoReturn:
        self.machine.transition(state, message)
        raise AuthError(message, reason=_FAILURE_FOR_STATE[state], context={"state": state})

    def _post(self, url: str, form: dict[str, str]) -> dict[str, Any]:
        body = parse.urlencode(form).encode("utf-8")
        req = request.Request(
            url,
            data=body,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/x-www-form-urlencoded",
                "User-Agent": self.user_agent,
            },
            method="POST",
        )
        try:
            with request.urlopen(req, timeout=self.http_timeout_seconds) as resp:  # nosec B310
                raw = resp.read().decode("utf-8")
        except error.HTTPError as exc:
            # OAuth servers report pending/denied states as 4xx with a JSON body
            raw = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
            parsed = _parse_json(raw)
            if parsed and parsed.get("error"):
                return parsed
            raise AuthError(
                f"Auth endpoint returned {exc.code}",
                reason=AuthFailure.INVALID,
                context={"url": url, "status": exc.code, "transient": exc.code >= 500},
                cause=exc,
            ) from exc
        except error.URLError as exc:
            raise AuthError(
                f"Auth endpoint unreachable: {exc.reason}",
                reason=AuthFailure.INVALID,
                context={"url": url, "transient": True},
                cause=exc,
            ) from exc
        except (TimeoutError, ConnectionError, http.client.HTTPException) as exc:
            raise AuthError(
                f"Auth endpoint connection failed: {exc!r}",
                reason=AuthFailure.INVALID,
                context={"url": url, "transient": True},
                cause=exc,
            ) from exc
        parsed = _parse_json(raw)
        if parsed is None:
            raise AuthError(
                "Auth endpoint returned a non-JSON body",
                reason=AuthFailure.INVALID,
                context={"url": url},
            )
        return parsed


def _parse_json(raw: str) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
