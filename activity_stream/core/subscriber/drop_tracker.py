"""
Malformed Message Tracker.

Dropping a malformed message is silent towards the application, but a
stream that drops a large share of its messages is broken in a way the
operator should hear about. This tracker keeps a sliding window of
processed/dropped counts and logs an error when the drop rate crosses a
threshold.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Any, Callable

from activity_stream.components.core.constants import StreamConstants
from activity_stream.shared.config.logging import get_logger

logger = get_logger(__name__)


class MalformedMessageTracker:
    """
    Tracks the malformed-message drop rate for one stream subscription.

    Owned by one connection manager and driven from its event loop, so it
    takes no locks.

    Features:
    - Sliding window tracking with configurable size
    - Alert threshold with cooldown to prevent alert storms
    - Bounded memory via deque maxlen

    Usage:
        tracker = MalformedMessageTracker(window_seconds=60, alert_threshold_percent=5)
        tracker.record_processed()  # Parsed and dispatched
        tracker.record_dropped()    # Malformed (triggers alert check)
        stats = tracker.get_stats()
    """

    def __init__(
        self,
        window_seconds: float = 60.0,
        alert_threshold_percent: float = 5.0,
        alert_cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
        name: str = "stream",
    ) -> None:
        """
        Args:
            window_seconds: Window size for calculating drop rate.
            alert_threshold_percent: Alert if drop rate exceeds this %.
            alert_cooldown_seconds: Minimum seconds between alerts.
            clock: Time source in epoch seconds.
            name: Stream name used in log output.
        """
        self._window_seconds = window_seconds
        self._alert_threshold = alert_threshold_percent / 100.0
        self._alert_cooldown = alert_cooldown_seconds
        self._clock = clock
        self._name = name

        max_entries = int(window_seconds * StreamConstants.DROP_WINDOW_MAX_ENTRIES_PER_SECOND)
        # (timestamp, dropped) pairs
        self._window: deque[tuple[float, bool]] = deque(maxlen=max(max_entries, 1))

        self._total_processed = 0
        self._total_dropped = 0

        self._last_alert_time: float | None = None
        self._alert_count = 0

    @property
    def total_dropped(self) -> int:
        return self._total_dropped

    @property
    def alert_count(self) -> int:
        return self._alert_count

    def record_processed(self) -> None:
        now = self._clock()
        self._trim(now)
        self._window.append((now, False))
        self._total_processed += 1

    def record_dropped(self) -> None:
        """Record a dropped message and alert if the window drop rate is too high."""
        now = self._clock()
        self._trim(now)
        self._window.append((now, True))
        self._total_dropped += 1
        self._check_alert(now)

    def _trim(self, now: float) -> None:
        """Remove entries outside the window."""
        cutoff = now - self._window_seconds
        while self._window and self._window[0][0] < cutoff:
            self._window.popleft()

    def _window_counts(self) -> tuple[int, int]:
        dropped = sum(1 for _, was_dropped in self._window if was_dropped)
        return len(self._window) - dropped, dropped

    def _check_alert(self, now: float) -> None:
        if self._last_alert_time is not None and now - self._last_alert_time < self._alert_cooldown:
            return

        processed, dropped = self._window_counts()
        drop_rate = dropped / (processed + dropped)
        if drop_rate > self._alert_threshold:
            self._last_alert_time = now
            self._alert_count += 1
            logger.error(
                "Malformed message rate exceeds threshold",
                stream=self._name,
                drop_rate_percent=round(drop_rate * 100, 2),
                threshold_percent=round(self._alert_threshold * 100, 2),
                window_dropped=dropped,
                window_processed=processed,
                window_seconds=self._window_seconds,
                alert_count=self._alert_count,
            )

    def get_stats(self) -> dict[str, Any]:
        """Get drop rate statistics."""
        self._trim(self._clock())
        processed, dropped = self._window_counts()
        total = processed + dropped

        return {
            "total_processed": self._total_processed,
            "total_dropped": self._total_dropped,
            "window_processed": processed,
            "window_dropped": dropped,
            "window_drop_rate_percent": round(dropped / total * 100, 2) if total else 0.0,
            "alert_threshold_percent": round(self._alert_threshold * 100, 2),
            "alert_count": self._alert_count,
            "window_seconds": self._window_seconds,
        }
