"""Source verification of a merged aggregate (no LLM, deterministic).

Every field that carries a :class:`SourceLocation` is looked up on its
source page.  A missing page is an error and invalidates the report; a
numeric value that cannot be found verbatim on the page is only a warning,
since currency symbols and thousands separators routinely change the
printed form.

Two reconciliation checks follow: each ledger's reported total against the
sum of its detail amounts, and the oracle-reported overall totals against
the totals accumulated over all ledgers.
"""

from __future__ import annotations

import logging
import math
import re
from decimal import Decimal
from typing import Mapping, Optional

from ..extraction.models import Aggregate, SourceLocation
from .models import ValidationReport, VerifiedField

logger = logging.getLogger(__name__)

# Absorbs float summation noise when comparing totals.
TOLERANCE = 1e-6


def format_number(value: float) -> str:
    """Bare decimal form: fixed point, no exponent, no trailing zeros."""
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _value_pattern(value_str: str) -> re.Pattern[str]:
    # Whole token: no word char or '.' before, no word char or decimal part after.
    return re.compile(rf"(?<![\w.]){re.escape(value_str)}(?!\w|\.\d)")


def _check_field(
    report: ValidationReport,
    page_text: Mapping[int, str],
    field_name: str,
    location: SourceLocation,
    value: Optional[float] = None,
) -> None:
    text = page_text.get(location.page)
    if text is None:
        report.add_error(f"source page {location.page} not found for {field_name}")
        return

    if value is not None and not isinstance(value, bool):
        value_str = format_number(value)
        if not _value_pattern(value_str).search(text):
            report.add_warning(
                f"exact value {value_str} not found in source text for {field_name}"
            )

    report.verified_fields.append(
        VerifiedField(name=field_name, location=location, verified=True)
    )


def _differs(a: float, b: float) -> bool:
    return abs(a - b) > TOLERANCE


def verify(aggregate: Aggregate, page_text: Mapping[int, str]) -> ValidationReport:
    """Check an aggregate against the page texts it was extracted from.

    Never raises; every finding is recorded in the returned report.
    """
    report = ValidationReport()

    for identity in aggregate.identities:
        if identity.source_location is not None:
            _check_field(report, page_text, f"identity {identity.id}", identity.source_location)

    for identity_id, ledger in aggregate.ledgers.items():
        derived = ledger.derived
        if derived.source_location is not None:
            _check_field(
                report, page_text, f"ledger {identity_id} summary",
                derived.source_location, derived.total_secondary,
            )
        for n, detail in enumerate(ledger.details, start=1):
            if detail.source_location is not None:
                _check_field(
                    report, page_text, f"ledger {identity_id} detail {n}",
                    detail.source_location, detail.amount,
                )

        detail_sum = ledger.detail_sum
        if _differs(detail_sum, derived.total_secondary):
            report.add_warning(
                f"ledger {identity_id}: detail sum ({format_number(detail_sum)}) does not "
                f"match reported total ({format_number(derived.total_secondary)})"
            )

    totals = aggregate.overall_totals
    if totals.source_location is not None:
        _check_field(
            report, page_text, "overall totals",
            totals.source_location, totals.total_secondary,
        )

    # Zero ledgers sum to 0, so oracle-only totals still show up as drift.
    ledger_secondary = aggregate.ledger_total_secondary
    if _differs(ledger_secondary, totals.total_secondary):
        report.add_warning(
            f"overall total_secondary ({format_number(totals.total_secondary)}) does not "
            f"match sum of ledger totals ({format_number(ledger_secondary)})"
        )
    ledger_primary = aggregate.ledger_total_primary
    if _differs(ledger_primary, totals.total_primary):
        report.add_warning(
            f"overall total_primary ({format_number(totals.total_primary)}) does not "
            f"match sum of ledger totals ({format_number(ledger_primary)})"
        )

    logger.info(
        "Verification: valid=%s, %d error(s), %d warning(s), %d field(s) checked",
        report.is_valid, len(report.errors), len(report.warnings),
        len(report.verified_fields),
    )
    return report
