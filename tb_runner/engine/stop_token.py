"""Cooperative cancellation for a run: signals, stop files and deadlines."""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

from tb_runner.models.run import SKIP_INTERRUPTED, SKIP_TIMEOUT


logger = logging.getLogger(__name__)


class StopToken:
    """
    Lightweight cooperative stop controller.

    It can be tripped by signals (SIGINT/SIGTERM), by the presence of a stop
    file on disk, or by a global deadline. Consumers call `should_stop()` at
    safe boundaries (between repetitions) and read `reason` to label the
    units they did not run.
    """

    def __init__(
        self,
        stop_file: Optional[Path] = None,
        enable_signals: bool = True,
        on_stop: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.stop_file = stop_file
        self._on_stop = on_stop
        self._lock = threading.Lock()
        self._reason: str | None = None
        self._timer: threading.Timer | None = None
        self._prev_handlers: Dict[int, Callable] = {}
        if enable_signals:
            self._install_signal_handlers()

    def _install_signal_handlers(self) -> None:
        """Capture SIGINT/SIGTERM and mark the token as interrupted."""
        if threading.current_thread() is not threading.main_thread():
            return
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self._prev_handlers[sig] = signal.getsignal(sig)
                signal.signal(sig, self._handle_signal)  # type: ignore[arg-type]
            except (OSError, ValueError):
                # Signals cannot be installed in this context; rely on the stop file.
                continue

    def _handle_signal(self, signum: int, frame) -> None:  # type: ignore[override]
        logger.warning("Received signal %s; stopping at the next safe boundary", signum)
        self.request_stop(SKIP_INTERRUPTED)

    @property
    def reason(self) -> str | None:
        return self._reason

    def arm_deadline(self, seconds: float) -> None:
        """Trip the token with reason ``timeout`` after ``seconds``."""
        self.disarm_deadline()
        timer = threading.Timer(seconds, self.request_stop, args=(SKIP_TIMEOUT,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def disarm_deadline(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def request_stop(self, reason: str = SKIP_INTERRUPTED) -> None:
        """Mark the token as stopped and trigger the callback once."""
        with self._lock:
            if self._reason is not None:
                return
            self._reason = reason
        if self._on_stop:
            try:
                self._on_stop(reason)
            except Exception:
                logger.debug("on_stop callback failed", exc_info=True)

    def should_stop(self) -> bool:
        """Return True when stop was requested or the stop file exists."""
        if self._reason is not None:
            return True
        if self.stop_file and self.stop_file.exists():
            self.request_stop(SKIP_INTERRUPTED)
            return True
        return False

    def restore(self) -> None:
        """Cancel the deadline and restore original signal handlers."""
        self.disarm_deadline()
        for sig, handler in self._prev_handlers.items():
            try:
                signal.signal(sig, handler)  # type: ignore[arg-type]
            except (OSError, ValueError):
                continue
        self._prev_handlers.clear()

    def __enter__(self) -> "StopToken":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()
