"""
Row sources and field mapping.

Rows come from a SQL query (SQLAlchemy, streamed) or from an NDJSON file of
ready-made documents. Column values are coerced into what the document
service accepts.
"""

from __future__ import annotations

import gzip
import io
import json
import math
import re
import sys
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterator, Mapping, Optional

from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from .models import Document, Operation

# Only tab, LF, CR and the legal XML character ranges are accepted in batches.
INVALID_CHARS = re.compile("[^\u0009\u000a\u000d\u0020-\uD7FF\uE000-\uFFFD]")

# 'score' is reserved and cannot be used as an index field name.
RESERVED_FIELDS = {"score": "score_"}

# yyyy-MM-ddTHH:mm:ss.SSSZ (RFC3339, UTC)
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def remove_invalid_chars(value: Optional[str]) -> Optional[str]:
    """Replace characters the document service rejects with a space."""
    if value is None:
        return None
    return INVALID_CHARS.sub(" ", value)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return f"{value.strftime(TIMESTAMP_FORMAT)}.{value.microsecond // 1000:03d}Z"


def coerce_value(value: Any) -> Any:
    """Coerce a column value; None means the value cannot be indexed and is dropped."""
    if isinstance(value, (float, Decimal)):
        value = float(value)
        # NaN and Infinity have no JSON encoding
        return value if math.isfinite(value) else None
    if isinstance(value, (bool, int)):
        return value
    if isinstance(value, str):
        return remove_invalid_chars(value)
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return format_timestamp(datetime(value.year, value.month, value.day))
    if isinstance(value, bytes):
        return remove_invalid_chars(value.decode("utf-8", errors="replace"))
    if isinstance(value, (list, tuple)):
        coerced = (coerce_value(v) for v in value if v is not None)
        return [v for v in coerced if v is not None]
    return remove_invalid_chars(str(value))


def map_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Column -> field map. NULL and non-finite values are dropped, reserved names renamed."""
    fields: Dict[str, Any] = {}
    for col, value in row.items():
        if value is None:
            continue
        value = coerce_value(value)
        if value is None:
            continue
        fields[RESERVED_FIELDS.get(col, col)] = value
    return fields


def row_to_document(
    row: Mapping[str, Any], *, id_column: str = "id", id_prefix: str = "di_"
) -> Document:
    if row.get(id_column) is None:
        raise ValueError(f"row has no {id_column!r} value: {dict(row)!r}")
    return Document(
        operation=Operation.ADD,
        id=f"{id_prefix}{row[id_column]}",
        fields=map_row(row),
    )


def build_engine(url: str) -> Engine:
    return create_engine(url, pool_pre_ping=True)


def iter_rows(engine: Engine, query: str, fetch_size: int = 1000) -> Iterator[Mapping[str, Any]]:
    """Stream rows for ``query`` without loading the result set into memory."""
    logger.info(f"Running source query (fetch size {fetch_size})")
    with engine.connect() as conn:
        result = conn.execution_options(stream_results=True, yield_per=fetch_size).execute(
            text(query)
        )
        n = 0
        for row in result.mappings():
            n += 1
            yield row
        logger.info(f"Source query returned {n} rows")


def iter_documents(
    engine: Engine, query: str, *, fetch_size: int = 1000, id_prefix: str = "di_"
) -> Iterator[Document]:
    for row in iter_rows(engine, query, fetch_size):
        yield row_to_document(row, id_prefix=id_prefix)


def _open_text(path: str):
    if path == "-":
        return io.TextIOWrapper(sys.stdin.buffer, encoding="utf-8")
    if path.endswith(".gz"):
        return gzip.open(path, "rt", encoding="utf-8")
    return open(path, "r", encoding="utf-8")


def iter_ndjson(path: str) -> Iterator[dict]:
    """Yield JSON objects from an NDJSON file ('-' for stdin, .gz ok). Blank lines skipped."""
    with _open_text(path) as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{lineno}: invalid JSON: {e}") from e


def coerce_document(obj: Mapping[str, Any]) -> Document:
    """Accept either a batch item ({"type","id","fields"}) or a flat row with an "id"."""
    if "fields" in obj or "type" in obj:
        return Document(
            operation=Operation(obj.get("type", "add")),
            id=str(obj["id"]),
            fields=obj.get("fields") or {},
        )
    return row_to_document(obj, id_prefix="")
