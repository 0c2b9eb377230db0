from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional

from loguru import logger

from .errors import UnsplittableBatchError
from .models import Document

# Document batches are limited to 5 MB each by the document service.
MAX_BATCH_BYTES = 5_000_000


@dataclass(frozen=True)
class BatchConfig:
    """Byte budget for one batch."""

    ceiling: int = MAX_BATCH_BYTES  # hard limit in bytes
    # Flush once a batch passes ceiling * margin. At 1.0 the overflow is only
    # seen after the ceiling is already crossed.
    margin: float = 0.995

    def __post_init__(self):
        if self.ceiling <= 2:
            raise ValueError("ceiling must be > 2 bytes")
        if not 0.0 < self.margin <= 1.0:
            raise ValueError("margin must be in (0, 1]")

    @property
    def threshold(self) -> float:
        return self.ceiling * self.margin


class Batch:
    """Ordered, serialized documents plus the byte size of their JSON array."""

    __slots__ = ("_items", "_size", "_raw", "final")

    def __init__(self, items: Iterable[bytes] = (), final: bool = False):
        self._items: List[bytes] = list(items)
        self._size = 2 + sum(len(i) for i in self._items) + max(len(self._items) - 1, 0)
        self._raw: Optional[bytes] = None
        self.final = final

    @classmethod
    def from_payload(cls, payload: bytes, final: bool = True) -> "Batch":
        """Wrap an already-serialized JSON array (e.g. a saved failure file).

        The payload is sent as-is; items are re-encoded only for counting.
        """
        parsed = json.loads(payload)
        if not isinstance(parsed, list):
            raise ValueError("batch payload must be a JSON array")
        batch = cls(
            (json.dumps(i, separators=(",", ":"), ensure_ascii=False).encode("utf-8") for i in parsed),
            final=final,
        )
        batch._raw = payload
        batch._size = len(payload)
        return batch

    def append(self, item: bytes) -> None:
        # one comma separator for every item after the first
        self._size += len(item) + (1 if self._items else 0)
        self._items.append(item)

    def copy(self) -> "Batch":
        # items are immutable bytes, a new list is a full copy
        return Batch(self._items, final=self.final)

    @property
    def size(self) -> int:
        return self._size

    @property
    def payload(self) -> bytes:
        if self._raw is not None:
            return self._raw
        return b"[" + b",".join(self._items) + b"]"

    @property
    def items(self) -> List[bytes]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._items)

    def __repr__(self) -> str:
        return f"Batch(documents={len(self)}, size={self._size}, final={self.final})"


@dataclass
class RunningTotals:
    batches_uploaded: int = 0
    documents_uploaded: int = 0


@dataclass(frozen=True)
class AddResult:
    """Outcome of offering one document to the accumulator.

    At most one of ``batch`` and ``error`` is set. ``error`` means the
    document was rejected and the accumulator state is unchanged.
    """

    batch: Optional[Batch] = None
    error: Optional[UnsplittableBatchError] = None

    @property
    def rejected(self) -> bool:
        return self.error is not None


class BatchAccumulator:
    """
    Packs documents into byte-bounded batches as densely as the ceiling allows.

    A copy of the batch taken after every add (``prior``) lets an overflowing
    batch be sent retroactively without the document that overflowed it; that
    document then starts the next batch.

    Usage:
        acc = BatchAccumulator(BatchConfig())
        for doc in documents:
            batch = acc.add(doc)
            if batch is not None:
                send(batch)
        last = acc.add(Document.sentinel())   # or acc.close()
    """

    def __init__(self, config: Optional[BatchConfig] = None):
        self._cfg = config or BatchConfig()
        self._current = Batch()
        self._prior = Batch()
        self._closed = False
        self.totals = RunningTotals()

    # --------------------------- public API

    @property
    def config(self) -> BatchConfig:
        return self._cfg

    @property
    def pending(self) -> int:
        """Documents held in the batch being built."""
        return len(self._current)

    @property
    def pending_bytes(self) -> int:
        return self._current.size

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def batches_uploaded(self) -> int:
        return self.totals.batches_uploaded

    @property
    def documents_uploaded(self) -> int:
        return self.totals.documents_uploaded

    def add(self, document: Optional[Document]) -> Optional[Batch]:
        """Add a document; return a batch when one is ready to send.

        Raises UnsplittableBatchError when no split can produce a valid batch.
        """
        result = self.offer(document)
        if result.error is not None:
            raise result.error
        return result.batch

    def offer(self, document: Optional[Document]) -> AddResult:
        """Like ``add`` but returns the rejection instead of raising it."""
        if document is None or document.is_sentinel:
            return AddResult(batch=self._finish())
        if self._closed:
            raise RuntimeError("BatchAccumulator is closed")

        item = document.to_bytes()
        alone = len(item) + 2
        if alone > self._cfg.ceiling:
            # Too large even as a one-document batch. State is left untouched.
            return AddResult(error=UnsplittableBatchError(alone, self._cfg.ceiling, document.id))

        self._current.append(item)
        emitted: Optional[Batch] = None

        if self._current.size > self._cfg.threshold:
            if self._current.size <= self._cfg.ceiling:
                emitted = self._emit(self._current)
                self._current = Batch()
            elif self._prior.size <= self._cfg.ceiling:
                emitted = self._emit(self._prior)
                self._current = Batch([item])
            else:
                err = UnsplittableBatchError(self._prior.size, self._cfg.ceiling, document.id)
                # roll back the append so the caller may skip this document
                self._current = self._prior.copy()
                return AddResult(error=err)

        self._prior = self._current.copy()
        return AddResult(batch=emitted)

    def close(self) -> Optional[Batch]:
        """Flush remaining documents as the final batch; safe to call multiple times."""
        return self._finish()

    # --------------------------- internals

    def _finish(self) -> Optional[Batch]:
        if self._closed:
            return None
        self._closed = True
        if not len(self._current):
            return None
        final = self._emit(self._current, final=True)
        self._current = Batch()
        self._prior = Batch()
        return final

    def _emit(self, batch: Batch, final: bool = False) -> Batch:
        out = Batch(batch.items, final=final)
        self.totals.batches_uploaded += 1
        self.totals.documents_uploaded += len(out)
        logger.debug(
            f"Batch #{self.totals.batches_uploaded} ready: {len(out)} documents, "
            f"{out.size} bytes{' (final)' if final else ''}"
        )
        return out
