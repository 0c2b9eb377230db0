from __future__ import annotations

import itertools
import threading
from time import monotonic
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from ..batch import Batch
from ..errors import ApplicationUploadError, TransportFault, map_transport_error
from ..metrics import (
    BATCH_BYTES,
    BATCHES_DISPATCHED_TOTAL,
    DOCUMENTS_UPLOADED_TOTAL,
    FAILURES_PERSISTED_TOTAL,
    RATE_LIMIT_WAIT_SEC,
    UPLOAD_LATENCY_SEC,
)
from .context import PipelineContext
from .dispatch import BackgroundDispatch, BlockingDispatch, DispatchMode
from .types import UploadOutcome, UploadState

_FAULTS = (TransportFault, BotoCoreError, ClientError, OSError)


class UploadCoordinator:
    """
    Sends emitted batches through the transport, one rate-limited slot each.

    The dispatch mode is chosen once at construction:

        coord = UploadCoordinator(ctx)                                   # blocking
        coord = UploadCoordinator(ctx, mode=BackgroundDispatch(4))       # fire-and-forget
        with coord:
            for batch in batches:
                coord.dispatch(batch)
        # exit drains in-flight uploads and releases the transport

    Blocking mode: a transport fault persists the exact payload to the failure
    sink and is then re-raised. Application errors (status=error) are logged
    and the run continues, unless ``raise_on_application_error`` is set.

    Background mode: ``dispatch`` returns as soon as the batch is submitted;
    the outcome object is filled in by the worker thread. Faults are persisted
    and logged, never raised to the producer.
    """

    def __init__(
        self,
        context: PipelineContext,
        *,
        mode: Optional[DispatchMode] = None,
        raise_on_application_error: bool = False,
    ):
        self.context = context
        self._mode: DispatchMode = mode or BlockingDispatch()
        self._strict = raise_on_application_error
        self._seq = itertools.count(1)
        self._lock = threading.Lock()
        self.outcomes: list[UploadOutcome] = []

    @classmethod
    def for_mode(
        cls, context: PipelineContext, use_async: bool, max_in_flight: int = 4, **kwargs
    ) -> "UploadCoordinator":
        mode = BackgroundDispatch(max_in_flight) if use_async else BlockingDispatch()
        return cls(context, mode=mode, **kwargs)

    @property
    def mode(self) -> str:
        return self._mode.name

    # --------------- context management

    def __enter__(self) -> "UploadCoordinator":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # --------------- public API

    def dispatch(self, batch: Batch, is_final: bool = False) -> UploadOutcome:
        """Reserve an upload slot, wait for a rate-limit slot, then hand the
        batch to the dispatch mode.

        The upload slot comes first, so the batch starts when its rate-limit
        slot is granted.
        """
        self._mode.reserve()
        try:
            waited = self.context.rate_limiter.await_slot()
        except BaseException:
            self._mode.unreserve()
            raise
        outcome = UploadOutcome(sequence=next(self._seq), documents=len(batch), size=batch.size)
        with self._lock:
            self.outcomes.append(outcome)
        outcome.waited_s = waited
        RATE_LIMIT_WAIT_SEC.observe(outcome.waited_s)
        BATCH_BYTES.observe(batch.size)
        outcome.advance(UploadState.DISPATCHED)
        return self._mode.dispatch(self, batch, outcome, is_final or batch.final)

    def drain(self, timeout: Optional[float] = None) -> int:
        """Block until background uploads finish; returns how many are still running."""
        return self._mode.drain(timeout)

    def close(self) -> None:
        """Drain in-flight uploads and release the shared transport."""
        self._mode.close()
        self.context.release()

    def summary(self) -> dict[str, int]:
        with self._lock:
            outcomes = list(self.outcomes)
        counts: dict[str, int] = {}
        for o in outcomes:
            counts[o.state.value] = counts.get(o.state.value, 0) + 1
        return counts

    # --------------- delivery (runs on the caller's or a worker thread)

    def deliver(
        self, transport, batch: Batch, outcome: UploadOutcome, *, escalate: bool
    ) -> UploadOutcome:
        payload = batch.payload
        t0 = monotonic()
        try:
            result = transport.upload(payload, len(payload))
        except _FAULTS as exc:
            outcome.elapsed_s = monotonic() - t0
            fault = map_transport_error(exc)
            self._on_fault(payload, outcome, fault)
            if escalate:
                if fault is exc:
                    raise
                raise fault from exc
            return outcome

        outcome.elapsed_s = monotonic() - t0
        outcome.result = result
        UPLOAD_LATENCY_SEC.labels(self.mode).observe(outcome.elapsed_s)
        DOCUMENTS_UPLOADED_TOTAL.labels(self.mode).inc(outcome.documents)

        if result.ok:
            outcome.advance(UploadState.SUCCEEDED)
            BATCHES_DISPATCHED_TOTAL.labels(self.mode, outcome.state.value).inc()
            logger.info(
                f"Upload success! HTTP Status Code = {result.http_status_code}, "
                f"Adds = {result.adds}, Deletes = {result.deletes}, "
                f"Upload took {outcome.elapsed_s:.1f}s"
            )
            return outcome

        outcome.advance(UploadState.FAILED_APPLICATION)
        BATCHES_DISPATCHED_TOTAL.labels(self.mode, outcome.state.value).inc()
        logger.error(
            f"Upload failed! HTTP Status Code = {result.http_status_code}, "
            f"batch #{outcome.sequence}. Errors follow..."
        )
        for warning in result.warnings:
            logger.error(f"  {warning}")
        if self._strict:
            err = ApplicationUploadError(result.http_status_code, result.warnings)
            outcome.error = err
            raise err
        return outcome

    def _on_fault(self, payload: bytes, outcome: UploadOutcome, fault: TransportFault) -> None:
        outcome.error = fault
        outcome.advance(UploadState.FAILED_TRANSPORT)
        BATCHES_DISPATCHED_TOTAL.labels(self.mode, outcome.state.value).inc()
        logger.error(f"Upload failed! batch #{outcome.sequence}: {fault}")

        try:
            path = self.context.failure_sink.persist(payload)
        except Exception as exc:
            # the sink contract says never raise; the fault must still surface
            logger.error(f"Failure sink raised while persisting batch #{outcome.sequence}: {exc}")
            path = None
        if path is not None:
            outcome.persisted_to = path
            fault.persisted_to = str(path)
            outcome.advance(UploadState.PERSISTED)
            FAILURES_PERSISTED_TOTAL.labels("ok").inc()
        else:
            outcome.advance(UploadState.PERSIST_FAILED)
            FAILURES_PERSISTED_TOTAL.labels("error").inc()
