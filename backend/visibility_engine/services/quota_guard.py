"""
Quota Guard
Rolling request window shared by every answer-engine call in a process
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from visibility_engine.config import get_settings
from visibility_engine.errors import QuotaExceededError

logger = logging.getLogger(__name__)


@dataclass
class QuotaWindow:
    """State of the current rolling window"""
    request_count: int = 0
    window_start: float = 0.0
    in_flight: int = 0
    is_blocked: bool = False
    retry_after: Optional[float] = None  # epoch seconds


class QuotaGuard:
    """
    Fast-fails calls once the rolling window ceiling is reached.

    Callers reserve a slot with acquire() before going to the network,
    then commit() on success or release() on failure. Reserved slots count
    against the ceiling so concurrent callers can never overshoot it.
    Only committed calls are counted as requests.
    """

    def __init__(
        self,
        max_requests: int = 500,
        window_seconds: float = 3600,
        clock: Callable[[], float] = time.time,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._window = QuotaWindow(window_start=clock())

    @classmethod
    def from_settings(cls) -> "QuotaGuard":
        settings = get_settings()
        return cls(
            max_requests=settings.QUOTA_MAX_REQUESTS,
            window_seconds=settings.QUOTA_WINDOW_SECONDS,
        )

    def _roll_window(self, now: float) -> None:
        if now - self._window.window_start >= self.window_seconds:
            self._window = QuotaWindow(window_start=now, in_flight=self._window.in_flight)

    def acquire(self) -> None:
        """
        Reserve one request slot.

        Raises:
            QuotaExceededError: the window is full; retry_after is the
                number of seconds until it rolls over
        """
        with self._lock:
            now = self._clock()
            self._roll_window(now)
            used = self._window.request_count + self._window.in_flight
            if used >= self.max_requests:
                wait = max(0.0, self.window_seconds - (now - self._window.window_start))
                self._window.is_blocked = True
                self._window.retry_after = now + wait
                logger.warning(
                    "Request quota exhausted (%d/%d), window resets in %.0fs",
                    used, self.max_requests, wait,
                )
                raise QuotaExceededError(wait, used, self.max_requests)
            self._window.in_flight += 1

    def commit(self) -> None:
        """Count a reserved slot as a successful request"""
        with self._lock:
            if self._window.in_flight > 0:
                self._window.in_flight -= 1
            self._window.request_count += 1

    def release(self) -> None:
        """Give back a reserved slot after a failed call"""
        with self._lock:
            if self._window.in_flight > 0:
                self._window.in_flight -= 1

    def note_throttled(self, retry_after: Optional[float]) -> None:
        """Record that the upstream answered 429"""
        with self._lock:
            self._window.is_blocked = True
            if retry_after is not None:
                self._window.retry_after = self._clock() + retry_after

    def remaining(self) -> int:
        with self._lock:
            self._roll_window(self._clock())
            used = self._window.request_count + self._window.in_flight
            return max(0, self.max_requests - used)

    def status(self) -> QuotaWindow:
        """Snapshot of the current window"""
        with self._lock:
            self._roll_window(self._clock())
            return replace(self._window)

    def reset(self) -> None:
        with self._lock:
            self._window = QuotaWindow(window_start=self._clock())
