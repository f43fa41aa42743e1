"""Per-sender fixed-window rate limiting for chat messages.

State is in-memory only and is lost on restart; the limiter is a soft
protection against flooding, not a durable quota.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW = 10.0  # seconds
MAX_MESSAGES_PER_WINDOW = 5


@dataclass
class RateWindow:
    """Admission state for one sender."""

    count: int
    window_start: float


class RateLimiter:
    """
    Fixed-window counter keyed by sender id.

    A rejected attempt does not consume the window; the window restarts on
    the first admission after ``window_seconds`` have elapsed.
    """

    def __init__(
        self,
        window_seconds: float = RATE_LIMIT_WINDOW,
        max_per_window: int = MAX_MESSAGES_PER_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self.max_per_window = max_per_window
        self._clock = clock
        self._windows: dict[int, RateWindow] = {}

    def admit(self, sender_id: int) -> bool:
        """
        Record an attempt and decide whether it is allowed.

        Args:
            sender_id: The sending user's id

        Returns:
            bool: True if admitted, False if throttled
        """
        now = self._clock()
        window = self._windows.get(sender_id)

        if window is None or now - window.window_start >= self.window_seconds:
            self._windows[sender_id] = RateWindow(count=1, window_start=now)
            return True

        if window.count >= self.max_per_window:
            logger.info(
                f"Rate limit exceeded for user {sender_id}: "
                f"{window.count}/{self.max_per_window} in {self.window_seconds}s"
            )
            return False

        window.count += 1
        return True

    def get_window(self, sender_id: int) -> Optional[RateWindow]:
        """Current window for a sender, if one was opened."""
        return self._windows.get(sender_id)

    def reset(self, sender_id: Optional[int] = None) -> None:
        """Forget one sender's window, or all windows."""
        if sender_id is None:
            self._windows.clear()
        else:
            self._windows.pop(sender_id, None)

    def __len__(self) -> int:
        return len(self._windows)
