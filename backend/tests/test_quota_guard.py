"""Tests for the rolling request quota."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from visibility_engine.errors import ErrorCode, QuotaExceededError
from visibility_engine.services.quota_guard import QuotaGuard


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestQuotaGuard:
    """Tests for QuotaGuard."""

    def test_ceiling_reached_after_exactly_max_successes(self) -> None:
        """The call after `ceiling` successes fails with RATE_LIMIT_EXCEEDED."""
        clock = FakeClock()
        guard = QuotaGuard(max_requests=3, window_seconds=3600, clock=clock)

        for _ in range(3):
            guard.acquire()
            guard.commit()

        with pytest.raises(QuotaExceededError) as exc_info:
            guard.acquire()

        assert exc_info.value.code == ErrorCode.RATE_LIMIT_EXCEEDED

    def test_wait_time_is_remaining_window(self) -> None:
        """retry_after is the time left in the window."""
        clock = FakeClock()
        guard = QuotaGuard(max_requests=1, window_seconds=3600, clock=clock)
        guard.acquire()
        guard.commit()

        clock.now += 600
        with pytest.raises(QuotaExceededError) as exc_info:
            guard.acquire()

        assert exc_info.value.retry_after == pytest.approx(3000)
        window = guard.status()
        assert window.is_blocked is True
        assert window.retry_after == pytest.approx(clock.now + 3000)

    def test_released_slots_do_not_count(self) -> None:
        """Failed calls give their slot back."""
        guard = QuotaGuard(max_requests=2, window_seconds=60, clock=FakeClock())

        for _ in range(5):
            guard.acquire()
            guard.release()

        assert guard.status().request_count == 0
        assert guard.remaining() == 2

    def test_in_flight_reservations_count_against_ceiling(self) -> None:
        """Concurrent reservations cannot overshoot the ceiling."""
        guard = QuotaGuard(max_requests=2, window_seconds=60, clock=FakeClock())

        guard.acquire()
        guard.acquire()

        with pytest.raises(QuotaExceededError):
            guard.acquire()

    def test_racing_threads_never_exceed_ceiling(self) -> None:
        """Threads racing on one window admit exactly max_requests calls."""
        workers = 24
        guard = QuotaGuard(max_requests=7, window_seconds=3600, clock=FakeClock())
        start = threading.Barrier(workers)

        def call() -> bool:
            start.wait(timeout=5)
            try:
                guard.acquire()
            except QuotaExceededError:
                return False
            time.sleep(0.001)
            guard.commit()
            return True

        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(lambda _: call(), range(workers)))

        assert outcomes.count(True) == 7
        assert outcomes.count(False) == workers - 7
        assert guard.status().request_count == 7
        assert guard.status().in_flight == 0

    def test_window_rolls_over(self) -> None:
        """A new window starts once the old one has elapsed."""
        clock = FakeClock()
        guard = QuotaGuard(max_requests=1, window_seconds=60, clock=clock)
        guard.acquire()
        guard.commit()

        clock.now += 61
        guard.acquire()
        guard.commit()

        window = guard.status()
        assert window.request_count == 1
        assert window.window_start == clock.now
        assert window.is_blocked is False

    def test_note_throttled_marks_window(self) -> None:
        """Upstream throttling is recorded on the window."""
        clock = FakeClock()
        guard = QuotaGuard(max_requests=10, window_seconds=60, clock=clock)

        guard.note_throttled(30)

        window = guard.status()
        assert window.is_blocked is True
        assert window.retry_after == clock.now + 30

    def test_reset(self) -> None:
        """Reset clears the window."""
        guard = QuotaGuard(max_requests=1, window_seconds=60, clock=FakeClock())
        guard.acquire()
        guard.commit()

        guard.reset()

        assert guard.remaining() == 1

    def test_rejects_non_positive_ceiling(self) -> None:
        """A ceiling below one is a configuration error."""
        with pytest.raises(ValueError):
            QuotaGuard(max_requests=0)
