from __future__ import annotations

from dataclasses import dataclass, field
from time import monotonic
from typing import Iterable, List, Optional

from loguru import logger

from .batch import BatchAccumulator, BatchConfig
from .config import Settings
from .coordinator import (
    FileFailureSink,
    PipelineContext,
    RateLimiter,
    UploadCoordinator,
)
from .models import Document


@dataclass
class RunSummary:
    documents_seen: int = 0
    batches_uploaded: int = 0
    documents_uploaded: int = 0
    skipped: List[str] = field(default_factory=list)
    outcomes: dict = field(default_factory=dict)
    elapsed_s: float = 0.0

    def lines(self) -> List[str]:
        out = [
            "-----------------------------",
            f"Total batches uploaded   = {self.batches_uploaded}",
            f"Total documents uploaded = {self.documents_uploaded}",
        ]
        if self.skipped:
            out.append(f"Oversize documents skipped = {len(self.skipped)}")
        for state, n in sorted(self.outcomes.items()):
            out.append(f"  {state:<20} {n}")
        out.append("-----------------------------")
        return out


def run_pipeline(
    documents: Iterable[Optional[Document]],
    coordinator: UploadCoordinator,
    *,
    config: Optional[BatchConfig] = None,
    skip_oversize: bool = False,
) -> RunSummary:
    """Batch ``documents`` in order and dispatch every emitted batch.

    The trailing sentinel is sent here, so the last partial batch is never
    dropped. With ``skip_oversize`` a document too large for any batch is
    logged and skipped; otherwise UnsplittableBatchError aborts the run.
    Background uploads are drained before returning.
    """
    acc = BatchAccumulator(config)
    summary = RunSummary()
    t0 = monotonic()

    with coordinator:
        for doc in documents:
            if doc is None or doc.is_sentinel:
                break
            summary.documents_seen += 1
            result = acc.offer(doc)
            if result.rejected:
                if not skip_oversize:
                    raise result.error
                logger.warning(f"Skipping document: {result.error}")
                summary.skipped.append(doc.id)
                continue
            if result.batch is not None:
                coordinator.dispatch(result.batch)

        # Final call. This is to ensure the last document is not missed.
        last = acc.add(Document.sentinel())
        if last is not None:
            coordinator.dispatch(last, is_final=True)

    summary.batches_uploaded = acc.batches_uploaded
    summary.documents_uploaded = acc.documents_uploaded
    summary.outcomes = coordinator.summary()
    summary.elapsed_s = monotonic() - t0
    return summary


def context_from_settings(settings: Settings, transport_factory) -> PipelineContext:
    return PipelineContext(
        transport_factory=transport_factory,
        rate_limiter=RateLimiter(settings.MIN_DISPATCH_INTERVAL_MS),
        failure_sink=FileFailureSink(settings.LOG_DIR),
    )


def coordinator_from_settings(settings: Settings, transport_factory) -> UploadCoordinator:
    ctx = context_from_settings(settings, transport_factory)
    return UploadCoordinator.for_mode(ctx, settings.USE_ASYNC, settings.MAX_IN_FLIGHT)
