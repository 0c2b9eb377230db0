"""
Pytest configuration and fixtures for cloudsearch-loader.

Provides a fake clock for rate-limit tests and in-memory transports and
failure sinks for coordinator tests.
"""

import threading
from pathlib import Path
from typing import Optional

import pytest

from cs_loader.coordinator import PipelineContext, RateLimiter
from cs_loader.errors import TransportFault
from cs_loader.models import Document, UploadResult


class FakeClock:
    """Monotonic clock whose sleep() just advances time."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingTransport:
    """Transport that records payloads and returns a canned result."""

    def __init__(self, result: Optional[UploadResult] = None, fail_with: Optional[Exception] = None):
        self.result = result or UploadResult(status="success", http_status_code=200)
        self.fail_with = fail_with
        self.payloads: list[bytes] = []
        self.content_lengths: list[int] = []
        self.closed = 0
        self._lock = threading.Lock()

    def upload(self, payload: bytes, content_length: int) -> UploadResult:
        with self._lock:
            self.payloads.append(payload)
            self.content_lengths.append(content_length)
        if self.fail_with is not None:
            raise self.fail_with
        return self.result.model_copy(update={"adds": payload.count(b'"type":"add"')})

    def close(self) -> None:
        self.closed += 1


class MemorySink:
    """Failure sink that keeps payloads in memory (or fails on demand)."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.payloads: list[bytes] = []

    def persist(self, payload: bytes) -> Optional[Path]:
        self.payloads.append(payload)
        if self.fail:
            return None
        return Path(f"/tmp/failure_{len(self.payloads)}.json")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def faulty_transport():
    return RecordingTransport(fail_with=TransportFault("connection reset by peer"))


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest.fixture
def make_context(clock):
    """Build a PipelineContext around a transport (or factory) with a fake clock."""

    def _make(transport=None, sink=None, interval_ms: int = 10_000, factory=None):
        if factory is None:
            t = transport or RecordingTransport()
            factory = lambda: t  # noqa: E731
        return PipelineContext(
            transport_factory=factory,
            rate_limiter=RateLimiter(interval_ms, clock=clock, sleep=clock.sleep),
            failure_sink=sink if sink is not None else MemorySink(),
        )

    return _make


@pytest.fixture
def doc_of_size():
    """Build a Document whose serialized batch item is exactly ``size`` bytes."""

    def _make(i: int, size: int) -> Document:
        # {"type":"add","id":"<id>","fields":{}} -- pad the id to hit the size
        base = Document(id=str(i), fields={})
        pad = size - len(base.to_bytes())
        if pad < 0:
            raise ValueError(f"size {size} is below the minimum {len(base.to_bytes())}")
        return Document(id=f"{i}" + "x" * pad, fields={})

    return _make


@pytest.fixture
def memory_sink_factory():
    return MemorySink


@pytest.fixture
def transport_factory_cls():
    return RecordingTransport
