"""
CloudSearch Loader

Streams rows from a relational source into AWS CloudSearch in batches that
respect the document service limits (5 MB per batch, one batch every 10s).

Usage:
    from cs_loader import (
        BatchAccumulator, BatchConfig, Document, FileFailureSink,
        PipelineContext, RateLimiter, UploadCoordinator, run_pipeline,
    )

    ctx = PipelineContext(
        transport_factory=lambda: CloudSearchTransport(endpoint, "us-east-1"),
        rate_limiter=RateLimiter(10_000),
        failure_sink=FileFailureSink("/var/log/cs-loader"),
    )
    summary = run_pipeline(documents, UploadCoordinator(ctx))
"""

from .models import Document, Operation, UploadResult
from .batch import Batch, BatchAccumulator, BatchConfig, AddResult, RunningTotals
from .errors import (
    LoaderError,
    UnsplittableBatchError,
    ApplicationUploadError,
    TransportFault,
    PersistenceFailure,
)
from .coordinator import (
    BackgroundDispatch,
    BlockingDispatch,
    FileFailureSink,
    PipelineContext,
    RateLimiter,
    UploadCoordinator,
    UploadOutcome,
    UploadState,
)
from .pipeline import RunSummary, run_pipeline

__version__ = "1.0.0"
__all__ = [
    "Document",
    "Operation",
    "UploadResult",
    "Batch",
    "BatchAccumulator",
    "BatchConfig",
    "AddResult",
    "RunningTotals",
    "LoaderError",
    "UnsplittableBatchError",
    "ApplicationUploadError",
    "TransportFault",
    "PersistenceFailure",
    "BackgroundDispatch",
    "BlockingDispatch",
    "FileFailureSink",
    "PipelineContext",
    "RateLimiter",
    "UploadCoordinator",
    "UploadOutcome",
    "UploadState",
    "RunSummary",
    "run_pipeline",
]
