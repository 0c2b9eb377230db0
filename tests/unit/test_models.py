"""
Unit tests for Document and UploadResult models.
"""

import json

import pytest
from pydantic import ValidationError

from cs_loader.models import Document, Operation, UploadResult


class TestDocument:
    def test_add_item_shape(self):
        doc = Document(id="di_1", fields={"first_name": "Ada", "age": 36})
        assert json.loads(doc.to_bytes()) == {
            "type": "add",
            "id": "di_1",
            "fields": {"first_name": "Ada", "age": 36},
        }

    def test_serialization_is_compact(self):
        doc = Document(id="1", fields={"a": 1})
        assert doc.to_bytes() == b'{"type":"add","id":"1","fields":{"a":1}}'

    def test_delete_item_has_no_fields(self):
        doc = Document(operation=Operation.DELETE, id="di_9", fields={"ignored": True})
        assert json.loads(doc.to_bytes()) == {"type": "delete", "id": "di_9"}

    def test_non_ascii_kept_as_utf8(self):
        doc = Document(id="1", fields={"city": "Zürich"})
        assert "Zürich".encode("utf-8") in doc.to_bytes()

    def test_immutable(self):
        doc = Document(id="1")
        with pytest.raises(ValidationError):
            doc.id = "2"

    def test_sentinel(self):
        assert Document.sentinel().is_sentinel
        assert not Document(id="1").is_sentinel

    def test_blank_id_rejected(self):
        with pytest.raises(ValidationError):
            Document(id="   ")

    def test_fields_are_read_only(self):
        doc = Document(id="1", fields={"a": 1})
        with pytest.raises(TypeError):
            doc.fields["a"] = 2
        with pytest.raises(TypeError):
            Document(id="2").fields["x"] = 1

    def test_fields_are_copied_from_the_caller(self):
        src = {"a": 1}
        doc = Document(id="1", fields=src)
        src["a"] = 99
        assert doc.fields == {"a": 1}
        assert doc.to_bytes() == b'{"type":"add","id":"1","fields":{"a":1}}'


class TestUploadResult:
    def test_from_success_response(self):
        resp = {
            "status": "success",
            "adds": 10,
            "deletes": 0,
            "warnings": [],
            "ResponseMetadata": {"HTTPStatusCode": 200},
        }
        r = UploadResult.from_response(resp)
        assert r.ok
        assert r.adds == 10
        assert r.http_status_code == 200

    def test_from_error_response(self):
        resp = {
            "status": "ERROR",
            "adds": 0,
            "warnings": [{"message": "bad field"}, {"message": "bad id"}],
            "ResponseMetadata": {"HTTPStatusCode": 400},
        }
        r = UploadResult.from_response(resp)
        assert not r.ok
        assert r.status == "error"
        assert r.warnings == ["bad field", "bad id"]
