"""
Dispatch modes for the upload coordinator.

BlockingDispatch sends on the caller's thread through the shared transport.
BackgroundDispatch submits each batch to a small thread pool with its own
transport and returns immediately; ``drain()`` waits for what is in flight.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Optional, Protocol

from loguru import logger

from ..batch import Batch
from .types import UploadOutcome

if TYPE_CHECKING:
    from .upload_coordinator import UploadCoordinator


class DispatchMode(Protocol):
    name: str

    def reserve(self) -> None: ...

    def unreserve(self) -> None: ...

    def dispatch(
        self, coord: "UploadCoordinator", batch: Batch, outcome: UploadOutcome, is_final: bool
    ) -> UploadOutcome: ...

    def drain(self, timeout: Optional[float] = None) -> int: ...

    def close(self) -> None: ...


class BlockingDispatch:
    """Upload on the calling thread and wait for the result."""

    name = "sync"

    def reserve(self) -> None:
        pass

    def unreserve(self) -> None:
        pass

    def dispatch(self, coord, batch, outcome, is_final):
        ctx = coord.context
        try:
            return coord.deliver(ctx.transport(), batch, outcome, escalate=True)
        finally:
            if is_final:
                ctx.release()

    def drain(self, timeout: Optional[float] = None) -> int:
        return 0

    def close(self) -> None:
        pass


class BackgroundDispatch:
    """Fire-and-forget uploads with a completion handler per batch.

    At most ``max_in_flight`` uploads run at once. ``reserve`` blocks the
    producer until one of them finishes, and is called before the rate-limit
    wait so a batch starts at the time its slot was granted.
    """

    name = "async"

    def __init__(self, max_in_flight: int = 4):
        if max_in_flight <= 0:
            raise ValueError("max_in_flight must be > 0")
        self.max_in_flight = max_in_flight
        self._slots = threading.BoundedSemaphore(max_in_flight)
        self._pool = ThreadPoolExecutor(max_workers=max_in_flight, thread_name_prefix="cs-upload")
        # counts submissions whose completion handler has not finished yet
        self._pending = 0
        self._idle = threading.Condition()
        self._closed = False

    @property
    def in_flight(self) -> int:
        with self._idle:
            return self._pending

    def reserve(self) -> None:
        """Take an upload slot; ``dispatch`` consumes it."""
        if self._closed:
            raise RuntimeError("BackgroundDispatch is closed")
        self._slots.acquire()

    def unreserve(self) -> None:
        self._slots.release()

    def dispatch(self, coord, batch, outcome, is_final):
        # the slot was taken by reserve()
        try:
            transport = coord.context.transport_factory()
        except BaseException:
            self._slots.release()
            raise
        with self._idle:
            self._pending += 1
        try:
            fut = self._pool.submit(coord.deliver, transport, batch, outcome, escalate=False)
        except BaseException:
            self._finished()
            transport.close()
            raise
        logger.info(
            f"Submitted batch upload - size = {batch.size / (1024 * 1024):.2f} MB, "
            f"# of documents = {len(batch)} documents..."
        )
        fut.add_done_callback(lambda f: self._on_done(f, transport, outcome))
        return outcome

    def _on_done(self, fut: Future, transport, outcome: UploadOutcome) -> None:
        try:
            exc = fut.exception()
            if exc is not None:
                logger.opt(exception=exc).error(
                    f"Upload failed! batch #{outcome.sequence}: {type(exc).__name__}: {exc}"
                )
        finally:
            try:
                transport.close()
            except Exception as exc:
                logger.warning(f"Closing transport for batch #{outcome.sequence} failed: {exc}")
            self._finished()

    def _finished(self) -> None:
        self._slots.release()
        with self._idle:
            self._pending -= 1
            if self._pending == 0:
                self._idle.notify_all()

    def drain(self, timeout: Optional[float] = None) -> int:
        """Wait for in-flight uploads; returns how many are still running."""
        with self._idle:
            if self._pending:
                logger.info(f"Waiting for {self._pending} in-flight upload(s)...")
            self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)
            return self._pending

    def close(self) -> None:
        if self._closed:
            return
        self.drain()
        self._closed = True
        self._pool.shutdown(wait=True)
