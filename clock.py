import threading
import time


class Clock:
    """Server clock that never hands out the same timestamp twice.

    File ``updated_at`` values and the poll cursor both come from here, so a
    write stored before a poll always sorts strictly before that poll's
    ``serverTime``, and two back-to-back writes always get increasing stamps
    even when the wall clock has not ticked.
    """

    STEP = 1e-6

    def __init__(self, source=time.time):
        self._source = source
        self._last = 0.0
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            current = self._source()
            if current <= self._last:
                current = self._last + self.STEP
            self._last = current
            return current

    def __call__(self) -> float:
        return self.now()


def is_live(now: float, last_seen: float, ttl: float) -> bool:
    return now - last_seen < ttl
