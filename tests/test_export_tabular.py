# tests/test_export_tabular.py
"""Tests for tabular export of ledger detail rows."""
import json

import pytest


@pytest.fixture
def aggregate():
    from ledgerx.extraction.models import Aggregate
    return Aggregate.model_validate({
        "identities": [
            {"id": "E1", "name": "Alice"},
            {"id": "E2", "name": "Bob"},
        ],
        "ledgers": {
            "E1": {
                "identity_id": "E1",
                "total_primary": 200,
                "details": [
                    {"amount": 60, "type": "sale", "source_location": {"page": 1}},
                    {"amount": 40, "type": "refund", "item_code": "X9"},
                ],
                "derived": {"total_secondary": 100},
            },
            "E3": {"identity_id": "E3", "total_primary": 5, "details": [{"amount": 5}]},
        },
    })


class TestDetailRows:
    def test_one_row_per_detail(self, aggregate):
        from ledgerx.export.tabular import detail_rows
        rows = detail_rows(aggregate)
        assert [(r["identity_id"], r["detail_no"]) for r in rows] == [
            ("E1", 1), ("E1", 2), ("E2", None), ("E3", 1),
        ]

    def test_identity_attributes_repeated(self, aggregate):
        from ledgerx.export.tabular import detail_rows
        e1 = [r for r in detail_rows(aggregate) if r["identity_id"] == "E1"]
        assert {r["identity_name"] for r in e1} == {"Alice"}
        assert {r["total_primary"] for r in e1} == {200}
        assert e1[0]["page"] == 1
        assert e1[1]["item_code"] == "X9"

    def test_ledger_without_identity(self, aggregate):
        from ledgerx.export.tabular import detail_rows
        [row] = [r for r in detail_rows(aggregate) if r["identity_id"] == "E3"]
        assert row["identity_name"] is None

    def test_frame_columns(self, aggregate):
        from ledgerx.export.tabular import COLUMNS, detail_frame
        df = detail_frame(aggregate)
        assert list(df.columns) == COLUMNS
        assert len(df) == 4


class TestCSVExport:
    def test_export_csv(self, aggregate, tmp_path):
        from ledgerx.export.tabular import export_csv
        path = export_csv(aggregate, tmp_path / "out" / "details.csv")
        assert path.exists()
        lines = path.read_text().strip().split("\n")
        assert len(lines) == 5  # header + 4 rows
        assert lines[0].startswith("identity_id,identity_name")


class TestJSONLExport:
    def test_export_jsonl(self, aggregate, tmp_path):
        from ledgerx.export.tabular import export_jsonl
        path = export_jsonl(aggregate, tmp_path / "details.jsonl")
        lines = path.read_text().strip().split("\n")
        assert len(lines) == 4
        first = json.loads(lines[0])
        assert first["identity_id"] == "E1"
        assert first["amount"] == 60
