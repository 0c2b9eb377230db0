from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from ..models import UploadResult


@runtime_checkable
class Transport(Protocol):
    """Performs the network call to the document endpoint.

    ``upload`` returns the endpoint's report, including application-level
    errors (status == "error"). Network/protocol failures raise TransportFault.
    """

    def upload(self, payload: bytes, content_length: int) -> UploadResult: ...

    def close(self) -> None: ...


@runtime_checkable
class FailureSink(Protocol):
    """Durable storage for payloads that could not be delivered.

    Must never raise: returns the location written, or None if the write failed.
    """

    def persist(self, payload: bytes) -> Optional[Path]: ...


class UploadState(str, Enum):
    """Lifecycle of one batch through the coordinator."""

    PENDING = "pending"
    DISPATCHED = "dispatched"
    SUCCEEDED = "succeeded"
    FAILED_APPLICATION = "failed_application"
    FAILED_TRANSPORT = "failed_transport"
    PERSISTED = "persisted"
    PERSIST_FAILED = "persist_failed"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = {
    UploadState.SUCCEEDED,
    UploadState.FAILED_APPLICATION,
    UploadState.PERSISTED,
    UploadState.PERSIST_FAILED,
}

_TRANSITIONS = {
    UploadState.PENDING: {UploadState.DISPATCHED},
    UploadState.DISPATCHED: {
        UploadState.SUCCEEDED,
        UploadState.FAILED_APPLICATION,
        UploadState.FAILED_TRANSPORT,
    },
    UploadState.FAILED_TRANSPORT: {UploadState.PERSISTED, UploadState.PERSIST_FAILED},
}


@dataclass
class UploadOutcome:
    """Mutable record of one batch's trip through the coordinator."""

    sequence: int
    documents: int
    size: int
    state: UploadState = UploadState.PENDING
    result: Optional[UploadResult] = None
    error: Optional[BaseException] = None
    persisted_to: Optional[Path] = None
    waited_s: float = 0.0
    elapsed_s: float = 0.0
    history: list[UploadState] = field(default_factory=list)

    def advance(self, state: UploadState) -> None:
        if state not in _TRANSITIONS.get(self.state, ()):
            raise RuntimeError(f"illegal upload transition {self.state.value} -> {state.value}")
        self.history.append(self.state)
        self.state = state

    @property
    def done(self) -> bool:
        return self.state.terminal
