"""Tabular export -- CSV, JSONL.

One row per ledger detail, with the owning identity's attributes and the
ledger totals repeated on every row.  Identities without details still get
a single row so no member disappears from the table.

Functions
---------
detail_rows
    Flatten an aggregate into plain row dicts.
export_csv
    Write detail rows to a CSV file via *pandas*.
export_jsonl
    Write detail rows as newline-delimited JSON.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd

from ..extraction.models import Aggregate, Identity, Ledger

COLUMNS = [
    "identity_id",
    "identity_name",
    "total_primary",
    "total_secondary",
    "detail_no",
    "amount",
    "type",
    "item_code",
    "description",
    "quantity",
    "page",
]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _identity_columns(identity_id: str, identity: Identity | None, ledger: Ledger | None) -> dict[str, Any]:
    return {
        "identity_id": identity_id,
        "identity_name": identity.name if identity else None,
        "total_primary": ledger.total_primary if ledger else None,
        "total_secondary": ledger.derived.total_secondary if ledger else None,
    }


def detail_rows(aggregate: Aggregate) -> list[dict[str, Any]]:
    """Flatten *aggregate* into row dicts in identity then detail order."""
    rows: list[dict[str, Any]] = []
    ids = [i.id for i in aggregate.identities]
    # Ledgers whose identity was never listed still export.
    ids += [key for key in aggregate.ledgers if key not in ids]

    for identity_id in ids:
        identity = aggregate.identity(identity_id)
        ledger = aggregate.ledgers.get(identity_id)
        base = _identity_columns(identity_id, identity, ledger)
        details = ledger.details if ledger else []
        if not details:
            rows.append({**base, "detail_no": None})
            continue
        for n, detail in enumerate(details, start=1):
            rows.append({
                **base,
                "detail_no": n,
                "amount": detail.amount,
                "type": detail.kind,
                "item_code": detail.item_code,
                "description": detail.description,
                "quantity": detail.quantity,
                "page": detail.source_location.page if detail.source_location else None,
            })
    return rows


def detail_frame(aggregate: Aggregate) -> pd.DataFrame:
    """Detail rows as a DataFrame with a stable column order."""
    return pd.DataFrame(detail_rows(aggregate), columns=COLUMNS)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def export_csv(aggregate: Aggregate, path: Path | str) -> Path:
    """Write the detail rows of *aggregate* to a CSV file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    detail_frame(aggregate).to_csv(path, index=False)
    return path


def export_jsonl(aggregate: Aggregate, path: Path | str) -> Path:
    """Write the detail rows of *aggregate* as JSONL, one row per line."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        for row in detail_rows(aggregate):
            fh.write(json.dumps(row, default=str) + "\n")
    return path
