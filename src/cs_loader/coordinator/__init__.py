"""Upload coordinator

Batch dispatch pipeline toward the document endpoint:
- RateLimiter (hard floor between dispatch starts)
- UploadCoordinator with blocking or background dispatch modes
- FileFailureSink for payloads that could not be delivered
- PipelineContext holding the per-run shared state
"""

from .types import Transport, FailureSink, UploadState, UploadOutcome
from .ratelimit import RateLimiter, DEFAULT_MIN_INTERVAL_MS
from .failure_sink import FileFailureSink
from .context import PipelineContext
from .dispatch import DispatchMode, BlockingDispatch, BackgroundDispatch
from .upload_coordinator import UploadCoordinator

__all__ = [
    # types
    "Transport",
    "FailureSink",
    "UploadState",
    "UploadOutcome",
    # policies
    "RateLimiter",
    "DEFAULT_MIN_INTERVAL_MS",
    "DispatchMode",
    "BlockingDispatch",
    "BackgroundDispatch",
    # runtime
    "PipelineContext",
    "UploadCoordinator",
    # tooling
    "FileFailureSink",
]
