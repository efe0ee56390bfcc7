"""Data models for extracted records and the merged aggregate.

Field names are snake_case.  Validation also accepts the camelCase member /
financials layout that extraction prompts commonly elicit (``members``,
``financials.byMember``, ``totalRevenue`` ...), so raw oracle JSON can be fed
straight into :meth:`PartialRecord.model_validate`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

# Oracles emit ids and item codes as bare numbers as often as strings.
_ALIASED = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class SourceLocation(BaseModel):
    """Page and in-page index anchoring an extracted value to its origin."""

    page: int = Field(ge=1, description="1-based page number")
    index: int = Field(default=0, ge=0, description="Position of the value on the page")


class Contact(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None


class Identity(BaseModel):
    """A deduplicated entity (member, clerk, employee) keyed by ``id``."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, extra="allow")

    id: str = Field(validation_alias=AliasChoices("id", "memberId", "clerk_id"))
    name: str = Field(default="", validation_alias=AliasChoices("name", "clerk_name"))
    contact: Optional[Contact] = None
    source_location: Optional[SourceLocation] = Field(
        default=None, validation_alias=AliasChoices("source_location", "sourceLocation")
    )


class DetailRecord(BaseModel):
    """One transaction / sale line belonging to an identity's ledger."""

    model_config = _ALIASED

    amount: float
    kind: str = Field(default="", validation_alias=AliasChoices("kind", "type"))
    item_code: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("item_code", "itemCode")
    )
    description: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("description", "item_description"),
    )
    quantity: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("quantity", "quantity_sold")
    )
    source_location: Optional[SourceLocation] = Field(
        default=None, validation_alias=AliasChoices("source_location", "sourceLocation")
    )


class LedgerSummary(BaseModel):
    """Derived per-ledger statistics."""

    model_config = _ALIASED

    total_secondary: float = Field(
        default=0.0, validation_alias=AliasChoices("total_secondary", "totalRevenue")
    )
    average: float = Field(
        default=0.0, validation_alias=AliasChoices("average", "averageTransaction")
    )
    source_location: Optional[SourceLocation] = Field(
        default=None, validation_alias=AliasChoices("source_location", "sourceLocation")
    )


class Ledger(BaseModel):
    """Accumulated financial record for one identity."""

    model_config = _ALIASED

    identity_id: str = Field(
        validation_alias=AliasChoices("identity_id", "memberId", "clerk_id")
    )
    total_primary: float = Field(
        default=0.0,
        validation_alias=AliasChoices("total_primary", "totalSales", "total_sales"),
    )
    details: list[DetailRecord] = Field(
        default_factory=list,
        validation_alias=AliasChoices("details", "transactions", "sales_records"),
    )
    derived: LedgerSummary = Field(
        default_factory=LedgerSummary,
        validation_alias=AliasChoices("derived", "summary"),
    )

    @property
    def detail_sum(self) -> float:
        return sum(d.amount for d in self.details)


class OverallTotals(BaseModel):
    """Document-wide totals as reported by the oracle."""

    model_config = _ALIASED

    total_primary: float = Field(
        default=0.0, validation_alias=AliasChoices("total_primary", "totalSales")
    )
    total_secondary: float = Field(
        default=0.0, validation_alias=AliasChoices("total_secondary", "totalRevenue")
    )
    source_location: Optional[SourceLocation] = Field(
        default=None, validation_alias=AliasChoices("source_location", "sourceLocation")
    )


class PartialMetadata(BaseModel):
    model_config = _ALIASED

    document_date: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("document_date", "documentDate")
    )
    period: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("period", "reportPeriod", "report_period"),
    )


class PartialRecord(BaseModel):
    """Structured extraction result for a single segment."""

    model_config = _ALIASED

    identities: list[Identity] = Field(
        default_factory=list,
        validation_alias=AliasChoices("identities", "members", "Clerks"),
    )
    ledgers: list[Ledger] = Field(default_factory=list)
    overall_totals: Optional[OverallTotals] = Field(
        default=None, validation_alias=AliasChoices("overall_totals", "overall")
    )
    metadata: Optional[PartialMetadata] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_financials(cls, data: Any) -> Any:
        """Lift ``financials.byMember`` / ``financials.overall`` to the top level."""
        if not isinstance(data, dict) or "financials" not in data:
            return data
        data = dict(data)
        financials = data.pop("financials") or {}
        if isinstance(financials, dict):
            if "ledgers" not in data and "byMember" in financials:
                data["ledgers"] = financials["byMember"]
            if "overall_totals" not in data and "overall" in financials:
                data["overall_totals"] = financials["overall"]
        return data

    @model_validator(mode="before")
    @classmethod
    def _clerk_ledgers(cls, data: Any) -> Any:
        """Clerk payloads carry sales inline; derive a ledger per clerk."""
        if not isinstance(data, dict) or "Clerks" not in data or "ledgers" in data:
            return data
        data = dict(data)
        ledgers = []
        for clerk in data.get("Clerks") or []:
            if isinstance(clerk, dict) and clerk.get("clerk_id") is not None:
                records = clerk.get("sales_records") or []
                ledgers.append({
                    "identity_id": clerk["clerk_id"],
                    "total_primary": clerk.get("total_sales") or 0.0,
                    "details": records,
                    "derived": {
                        "total_secondary": sum(
                            float(r.get("amount") or 0.0)
                            for r in records if isinstance(r, dict)
                        ),
                    },
                })
        data["ledgers"] = ledgers
        return data


class DocumentMetadata(BaseModel):
    document_date: Optional[str] = None
    period: Optional[str] = None
    extraction_timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class Aggregate(BaseModel):
    """The merged, document-wide result.

    ``identities`` and ``ledgers`` keep first-sighting order so that two
    merges over the same input serialise identically.
    """

    identities: list[Identity] = Field(default_factory=list)
    ledgers: dict[str, Ledger] = Field(default_factory=dict)
    overall_totals: OverallTotals = Field(default_factory=OverallTotals)
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)

    def identity(self, identity_id: str) -> Identity | None:
        for ident in self.identities:
            if ident.id == identity_id:
                return ident
        return None

    @property
    def ledger_total_primary(self) -> float:
        return sum(ledger.total_primary for ledger in self.ledgers.values())

    @property
    def ledger_total_secondary(self) -> float:
        return sum(ledger.derived.total_secondary for ledger in self.ledgers.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serialisable dict."""
        return self.model_dump(mode="json")
