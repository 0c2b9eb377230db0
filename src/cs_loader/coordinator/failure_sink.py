"""
File-based failure sink.

Writes a rejected or undeliverable batch payload verbatim to its own file so
it can be inspected or replayed later (``cs-loader replay <file>``).
"""

from __future__ import annotations

import threading
import time
import uuid
from pathlib import Path
from typing import Optional

from loguru import logger

from ..errors import PersistenceFailure

DEFAULT_FILE_PREFIX = "DatabaseToCloudsearch"
DEFAULT_FAILURE_DIR = Path.home() / "DatabaseToCloudsearch" / "logs"


class FileFailureSink:
    """Persist payloads as ``<prefix>_upload_failure_<millis>_<uid>.json``.

    Example:
        sink = FileFailureSink("/var/log/cs-loader")
        path = sink.persist(batch.payload)   # None if the write failed
    """

    def __init__(
        self,
        directory: Optional[str | Path] = None,
        *,
        prefix: str = DEFAULT_FILE_PREFIX,
        mkdirs: bool = True,
    ):
        self.directory = Path(directory) if directory else DEFAULT_FAILURE_DIR
        self.prefix = prefix
        self._mkdirs = mkdirs
        self._lock = threading.Lock()
        self.persisted: list[Path] = []

    def _next_path(self) -> Path:
        millis = int(time.time() * 1000)
        return self.directory / f"{self.prefix}_upload_failure_{millis}_{uuid.uuid4().hex[:8]}.json"

    def write(self, payload: bytes) -> Path:
        """Write the payload; raises PersistenceFailure."""
        try:
            if self._mkdirs:
                self.directory.mkdir(parents=True, exist_ok=True)
            path = self._next_path()
            # "x": never overwrite an earlier failure
            with open(path, "xb") as f:
                f.write(payload)
        except OSError as e:
            raise PersistenceFailure(f"could not write failure payload to {self.directory}: {e}") from e
        with self._lock:
            self.persisted.append(path)
        return path

    def persist(self, payload: bytes) -> Optional[Path]:
        try:
            path = self.write(payload)
        except PersistenceFailure as exc:
            logger.error(f"Failed to log the data that caused the upload failure: {exc}")
            return None
        logger.warning(f"Failed upload payload ({len(payload)} bytes) saved to {path}")
        return path
