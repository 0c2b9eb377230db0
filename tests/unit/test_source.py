"""
Unit tests for row sources and field mapping.
"""

import gzip
import json
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, text

from cs_loader.models import Operation
from cs_loader.source import (
    coerce_document,
    coerce_value,
    format_timestamp,
    iter_documents,
    iter_ndjson,
    iter_rows,
    map_row,
    remove_invalid_chars,
    row_to_document,
)


class TestFieldMapping:
    def test_invalid_chars_replaced_with_space(self):
        bad = "a" + chr(0x01) + "b" + chr(0x0B) + "c" + chr(0xFFFE)
        assert remove_invalid_chars(bad) == "a b c "

    def test_valid_whitespace_kept(self):
        s = "line1\nline2\tx\r"
        assert remove_invalid_chars(s) == s

    def test_non_bmp_is_replaced(self):
        assert remove_invalid_chars("x" + chr(0x1F600)) == "x "

    def test_none_passthrough(self):
        assert remove_invalid_chars(None) is None

    def test_timestamp_format(self):
        ts = datetime(2015, 3, 7, 14, 5, 9, 123456)
        assert format_timestamp(ts) == "2015-03-07T14:05:09.123Z"

    def test_aware_timestamp_converted_to_utc(self):
        ts = datetime(2015, 3, 7, 16, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(ts) == "2015-03-07T14:00:00.000Z"

    def test_date_becomes_midnight(self):
        assert coerce_value(date(1990, 1, 2)) == "1990-01-02T00:00:00.000Z"

    def test_scalars(self):
        assert coerce_value(7) == 7
        assert coerce_value(True) is True
        assert coerce_value(Decimal("1.5")) == 1.5
        assert coerce_value(b"raw") == "raw"
        assert coerce_value(["a", None, 2]) == ["a", 2]

    def test_non_finite_numbers_are_dropped(self):
        row = {
            "id": 1,
            "ratio": float("nan"),
            "limit": float("inf"),
            "amount": Decimal("NaN"),
            "samples": [1.5, float("-inf"), 2.0],
        }
        fields = map_row(row)
        assert fields == {"id": 1, "samples": [1.5, 2.0]}
        assert b"NaN" not in row_to_document(row).to_bytes()
        assert coerce_value(float("nan")) is None

    def test_map_row_drops_nulls_and_renames_score(self):
        row = {"id": 5, "score": 9.5, "nickname": None, "name": "Ada"}
        assert map_row(row) == {"id": 5, "score_": 9.5, "name": "Ada"}

    def test_row_to_document_prefixes_id(self):
        doc = row_to_document({"id": 42, "name": "Ada"})
        assert doc.id == "di_42"
        assert doc.operation is Operation.ADD
        assert doc.fields == {"id": 42, "name": "Ada"}

    def test_row_without_id_rejected(self):
        with pytest.raises(ValueError, match="no 'id'"):
            row_to_document({"name": "nobody"})


class TestSqlSource:
    @pytest.fixture
    def engine(self):
        eng = create_engine("sqlite://")
        with eng.begin() as conn:
            conn.execute(text("CREATE TABLE employee (id INTEGER, first_name TEXT, score REAL)"))
            conn.execute(
                text("INSERT INTO employee VALUES (1, 'Ada', 1.0), (2, 'Grace', NULL), (3, 'Linus', 3.0)")
            )
        yield eng
        eng.dispose()

    def test_iter_rows_streams_all_rows(self, engine):
        rows = list(iter_rows(engine, "SELECT * FROM employee ORDER BY id", fetch_size=2))
        assert [r["first_name"] for r in rows] == ["Ada", "Grace", "Linus"]

    def test_iter_documents(self, engine):
        docs = list(
            iter_documents(engine, "SELECT * FROM employee ORDER BY id", id_prefix="emp_")
        )
        assert [d.id for d in docs] == ["emp_1", "emp_2", "emp_3"]
        assert docs[0].fields == {"id": 1, "first_name": "Ada", "score_": 1.0}
        assert "score_" not in docs[1].fields


class TestNdjson:
    def test_reads_plain_file_skipping_blank_lines(self, tmp_path):
        p = tmp_path / "docs.ndjson"
        p.write_text('{"id": 1}\n\n{"id": 2}\n', encoding="utf-8")
        assert list(iter_ndjson(str(p))) == [{"id": 1}, {"id": 2}]

    def test_reads_gzip(self, tmp_path):
        p = tmp_path / "docs.ndjson.gz"
        with gzip.open(p, "wt", encoding="utf-8") as f:
            f.write(json.dumps({"id": "a"}) + "\n")
        assert list(iter_ndjson(str(p))) == [{"id": "a"}]

    def test_bad_line_reports_line_number(self, tmp_path):
        p = tmp_path / "bad.ndjson"
        p.write_text('{"id": 1}\n{oops\n', encoding="utf-8")
        with pytest.raises(ValueError, match=":2:"):
            list(iter_ndjson(str(p)))

    def test_coerce_batch_item(self):
        doc = coerce_document({"type": "delete", "id": "di_3"})
        assert doc.operation is Operation.DELETE
        assert doc.id == "di_3"

    def test_coerce_flat_row_has_no_prefix(self):
        doc = coerce_document({"id": 3, "score": 1})
        assert doc.id == "3"
        assert doc.fields == {"id": 3, "score_": 1}
