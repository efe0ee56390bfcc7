# tests/test_extraction_models.py
"""Tests for partial-record and aggregate models."""

import pytest
from pydantic import ValidationError

MEMBER_PAYLOAD = {
    "members": [
        {"id": "M1", "name": "Alice", "sourceLocation": {"page": 1, "index": 3}},
    ],
    "financials": {
        "byMember": [
            {
                "memberId": "M1",
                "totalSales": 100,
                "transactions": [
                    {"amount": 60, "type": "sale", "sourceLocation": {"page": 1}},
                ],
                "summary": {"totalRevenue": 60, "averageTransaction": 60},
            }
        ],
        "overall": {"totalSales": 100, "totalRevenue": 60},
    },
    "metadata": {"documentDate": "2024-01-31", "reportPeriod": "January 2024"},
}

CLERK_PAYLOAD = {
    "Clerks": [
        {
            "clerk_id": 7,
            "clerk_name": "Bob",
            "total_sales": 30,
            "sales_records": [
                {"item_code": "A1", "item_description": "Widget", "quantity_sold": 2, "amount": 30},
            ],
        }
    ]
}


class TestPartialRecordParsing:

    def test_snake_case_payload(self):
        from ledgerx.extraction.models import PartialRecord
        rec = PartialRecord.model_validate({
            "identities": [{"id": "E1", "name": "Eve"}],
            "ledgers": [{"identity_id": "E1", "total_primary": 5, "details": [{"amount": 5}]}],
        })
        assert rec.identities[0].id == "E1"
        assert rec.ledgers[0].details[0].amount == 5.0
        assert rec.overall_totals is None
        assert rec.metadata is None

    def test_member_financials_layout(self):
        from ledgerx.extraction.models import PartialRecord
        rec = PartialRecord.model_validate(MEMBER_PAYLOAD)
        assert rec.identities[0].source_location.page == 1
        assert rec.identities[0].source_location.index == 3
        ledger = rec.ledgers[0]
        assert ledger.identity_id == "M1"
        assert ledger.total_primary == 100
        assert ledger.details[0].kind == "sale"
        assert ledger.derived.total_secondary == 60
        assert ledger.derived.average == 60
        assert rec.overall_totals.total_primary == 100
        assert rec.metadata.document_date == "2024-01-31"
        assert rec.metadata.period == "January 2024"

    def test_clerk_layout_derives_ledgers(self):
        from ledgerx.extraction.models import PartialRecord
        rec = PartialRecord.model_validate(CLERK_PAYLOAD)
        assert rec.identities[0].id == "7"
        assert rec.identities[0].name == "Bob"
        ledger = rec.ledgers[0]
        assert ledger.identity_id == "7"
        assert ledger.total_primary == 30
        detail = ledger.details[0]
        assert (detail.item_code, detail.description, detail.quantity) == ("A1", "Widget", 2)
        assert ledger.derived.total_secondary == 30

    def test_identity_keeps_extra_attributes(self):
        from ledgerx.extraction.models import Identity
        ident = Identity.model_validate({"id": "X", "department": "Sales"})
        assert ident.model_extra == {"department": "Sales"}

    def test_page_numbers_start_at_one(self):
        from ledgerx.extraction.models import SourceLocation
        with pytest.raises(ValidationError):
            SourceLocation(page=0)

    def test_detail_requires_amount(self):
        from ledgerx.extraction.models import DetailRecord
        with pytest.raises(ValidationError):
            DetailRecord.model_validate({"type": "sale"})


class TestAggregate:

    def test_detail_sum(self):
        from ledgerx.extraction.models import DetailRecord, Ledger
        ledger = Ledger(identity_id="A", details=[DetailRecord(amount=1.5), DetailRecord(amount=2.5)])
        assert ledger.detail_sum == 4.0

    def test_lookup_and_totals(self):
        from ledgerx.extraction.models import Aggregate, Identity, Ledger, LedgerSummary
        agg = Aggregate(
            identities=[Identity(id="A", name="Ann")],
            ledgers={
                "A": Ledger(identity_id="A", total_primary=10, derived=LedgerSummary(total_secondary=7)),
                "B": Ledger(identity_id="B", total_primary=5, derived=LedgerSummary(total_secondary=3)),
            },
        )
        assert agg.identity("A").name == "Ann"
        assert agg.identity("B") is None
        assert agg.ledger_total_primary == 15
        assert agg.ledger_total_secondary == 10

    def test_to_dict_is_json_ready_and_reloadable(self):
        import json

        from ledgerx.extraction.models import Aggregate, Identity, Ledger
        agg = Aggregate(identities=[Identity(id="A")], ledgers={"A": Ledger(identity_id="A")})
        data = agg.to_dict()
        json.dumps(data)
        assert isinstance(data["metadata"]["extraction_timestamp"], str)
        again = Aggregate.model_validate(data)
        assert again.ledgers["A"].identity_id == "A"
