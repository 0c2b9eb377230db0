from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from loguru import logger

from .ratelimit import RateLimiter
from .types import FailureSink, Transport


@dataclass
class PipelineContext:
    """Everything one run shares between dispatches.

    Owned by the caller and passed to the coordinator; nothing here is
    process-global. ``transport()`` lazily builds the shared transport used by
    blocking dispatch, background dispatch asks ``transport_factory`` for a
    fresh one per batch.
    """

    transport_factory: Callable[[], Transport]
    rate_limiter: RateLimiter
    failure_sink: FailureSink
    _shared: Optional[Transport] = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def transport(self) -> Transport:
        with self._lock:
            if self._shared is None:
                self._shared = self.transport_factory()
                logger.debug(f"Transport created: {type(self._shared).__name__}")
            return self._shared

    def release(self) -> None:
        """Close the shared transport; safe to call multiple times."""
        with self._lock:
            shared, self._shared = self._shared, None
        if shared is not None:
            shared.close()
            logger.debug("Transport released")
