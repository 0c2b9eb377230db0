from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from loguru import logger

# Document batches are limited to one batch every 10 seconds.
DEFAULT_MIN_INTERVAL_MS = 10_000


class RateLimiter:
    """Hard floor between dispatch starts.

    ``await_slot()`` blocks until at least ``min_interval_ms`` has passed since
    the previous slot was granted, then records the grant time. Unused slots
    are not banked, so there are no bursts. The timestamp is guarded by a lock,
    which makes one limiter safe to share between dispatching threads.
    """

    def __init__(
        self,
        min_interval_ms: int = DEFAULT_MIN_INTERVAL_MS,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if min_interval_ms < 0:
            raise ValueError("min_interval_ms must be >= 0")
        self._interval_ms = min_interval_ms
        self._interval = min_interval_ms / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def min_interval_ms(self) -> int:
        return self._interval_ms

    @property
    def last_dispatch(self) -> Optional[float]:
        return self._last

    def await_slot(self) -> float:
        """Block until the next slot is free. Returns seconds spent waiting."""
        with self._lock:
            waited = 0.0
            if self._last is not None:
                remaining = self._interval - (self._clock() - self._last)
                while remaining > 0:
                    logger.debug(f"Rate limit: waiting {remaining:.2f}s before next batch")
                    self._sleep(remaining)
                    waited += remaining
                    remaining = self._interval - (self._clock() - self._last)
            self._last = self._clock()
            return waited

    def reset(self) -> None:
        with self._lock:
            self._last = None
