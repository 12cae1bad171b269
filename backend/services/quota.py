"""Daily send quota shared by every outbound path."""
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from ..core.logger import logger


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DailyQuotaTracker:
    """In-process counter of messages sent today (UTC).

    The count lives in memory only, so a process restart starts the day at
    zero again. Manual sends, the scheduled job and reply handling must all
    share one instance.
    """

    def __init__(self, limit: int, clock: Optional[Callable[[], datetime]] = None):
        if limit < 0:
            raise ValueError("Daily limit cannot be negative")
        self.limit = limit
        self._clock = clock or _utc_now
        self._lock = threading.Lock()
        self.count = 0
        self.day_key = self._today()

    def _today(self) -> str:
        return self._clock().astimezone(timezone.utc).date().isoformat()

    def _roll_over_locked(self) -> bool:
        today = self._today()
        if today == self.day_key:
            return False
        logger.info(f"Daily lead sent count reset for {today} (was {self.count} on {self.day_key})")
        self.count = 0
        self.day_key = today
        return True

    def reset_if_new_day(self) -> bool:
        """Reset the counter when the UTC date has moved on. Returns True if it reset."""
        with self._lock:
            return self._roll_over_locked()

    def get_remaining(self) -> int:
        with self._lock:
            self._roll_over_locked()
            return max(0, self.limit - self.count)

    def try_reserve(self) -> bool:
        """Take one slot if any is left."""
        with self._lock:
            self._roll_over_locked()
            if self.count >= self.limit:
                return False
            self.count += 1
            return True

    def release(self, day_key: Optional[str] = None) -> None:
        """Give back a slot whose message was never delivered.

        A slot reserved on a day that has since rolled over is not returned.
        """
        with self._lock:
            if day_key is not None and day_key != self.day_key:
                return
            if self.count > 0:
                self.count -= 1

    def snapshot(self) -> Dict:
        with self._lock:
            self._roll_over_locked()
            return {
                "count": self.count,
                "day_key": self.day_key,
                "limit": self.limit,
                "remaining": max(0, self.limit - self.count),
            }
