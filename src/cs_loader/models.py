"""
Pydantic data models for the CloudSearch loader.

Documents are immutable once built and know how to render themselves as a
CloudSearch batch item.
"""

from __future__ import annotations

import json
from enum import Enum
from types import MappingProxyType
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Operation(str, Enum):
    """CloudSearch batch operation kinds."""

    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class Document(BaseModel):
    """One unit of work for the document service.

    ``id`` is None only for the end-of-stream sentinel, see ``Document.sentinel()``.
    """

    model_config = ConfigDict(frozen=True)

    operation: Operation = Operation.ADD
    id: Optional[str] = None
    fields: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("id")
    @classmethod
    def _non_blank_id(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Document id must not be blank")
        return v

    @field_validator("fields")
    @classmethod
    def _read_only_fields(cls, v):
        # private copy behind a read-only view
        return MappingProxyType(dict(v))

    @classmethod
    def sentinel(cls) -> "Document":
        """End-of-stream marker: flushes whatever the accumulator still holds."""
        return cls(id=None)

    @property
    def is_sentinel(self) -> bool:
        return self.id is None

    def to_item(self) -> dict:
        """CloudSearch batch item. Delete items carry no fields."""
        item: dict = {"type": self.operation.value, "id": self.id}
        if self.operation is not Operation.DELETE:
            item["fields"] = dict(self.fields)
        return item

    def to_bytes(self) -> bytes:
        """Compact UTF-8 JSON for the batch item (the unit the size budget counts)."""
        return json.dumps(
            self.to_item(), separators=(",", ":"), ensure_ascii=False, default=str
        ).encode("utf-8")


class UploadResult(BaseModel):
    """What the document service reported for one batch upload."""

    status: str
    http_status_code: int = 200
    adds: int = 0
    deletes: int = 0
    warnings: List[str] = Field(default_factory=list)

    @field_validator("status")
    def _lower_status(cls, v):
        return v.lower()

    @property
    def ok(self) -> bool:
        return self.status != "error"

    @classmethod
    def from_response(cls, resp: dict) -> "UploadResult":
        """Build from a boto3 ``upload_documents`` response dict."""
        meta = resp.get("ResponseMetadata") or {}
        return cls(
            status=resp.get("status", "error"),
            http_status_code=meta.get("HTTPStatusCode", 0),
            adds=resp.get("adds", 0),
            deletes=resp.get("deletes", 0),
            warnings=[w.get("message", "") for w in resp.get("warnings") or []],
        )
