"""Segment extraction: oracle client, concurrent dispatcher and merge engine."""
from .dispatcher import CancelToken, Dispatcher, SegmentResult, SlotStatus
from .merge import merge
from .models import (
    Aggregate,
    DetailRecord,
    DocumentMetadata,
    Identity,
    Ledger,
    LedgerSummary,
    OverallTotals,
    PartialMetadata,
    PartialRecord,
    SourceLocation,
)
from .oracle import DspyOracle, Oracle, SegmentContext, record_from_payload
from .retry import RetryPolicy, exponential_backoff

__all__ = [
    "Aggregate",
    "CancelToken",
    "DetailRecord",
    "Dispatcher",
    "DocumentMetadata",
    "DspyOracle",
    "Identity",
    "Ledger",
    "LedgerSummary",
    "Oracle",
    "OverallTotals",
    "PartialMetadata",
    "PartialRecord",
    "RetryPolicy",
    "SegmentContext",
    "SegmentResult",
    "SlotStatus",
    "SourceLocation",
    "exponential_backoff",
    "merge",
    "record_from_payload",
]
