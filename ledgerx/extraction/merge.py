"""Merge / reconciliation of per-segment partial records.

:func:`merge` folds partial records into one :class:`Aggregate` strictly in
segment order:

1. identities are deduplicated by ``id``; the first sighting wins and later
   sightings never overwrite attributes;
2. ledgers for a known identity are extended: details appended,
   ``total_primary`` and ``derived.total_secondary`` summed, and
   ``derived.average`` recomputed over the merged details;
3. each record's segment-local overall totals are added to the running
   overall totals (independently of the ledger sums);
4. the first segment supplying a ``document_date`` or ``period`` wins;
   ``extraction_timestamp`` is the time the aggregate was created.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Union

from ..errors import MergeError
from .models import (
    Aggregate,
    DocumentMetadata,
    Ledger,
    OverallTotals,
    PartialRecord,
)

logger = logging.getLogger(__name__)

IndexedRecord = tuple[int, PartialRecord]


def _ordered(records: Iterable[Union[PartialRecord, IndexedRecord]]) -> list[IndexedRecord]:
    """Normalise input to ``(segment_index, record)`` pairs sorted by index."""
    pairs: list[IndexedRecord] = []
    for position, item in enumerate(records):
        if isinstance(item, PartialRecord):
            pairs.append((position, item))
        else:
            index, record = item
            pairs.append((index, record))
    indices = [i for i, _ in pairs]
    if len(set(indices)) != len(indices):
        raise MergeError(f"Duplicate segment indices in merge input: {sorted(indices)}")
    return sorted(pairs, key=lambda pair: pair[0])


def _average(total: float, count: int) -> float:
    return total / count if count else 0.0


def _extend_ledger(existing: Ledger, incoming: Ledger) -> None:
    existing.details.extend(d.model_copy(deep=True) for d in incoming.details)
    existing.total_primary += incoming.total_primary
    existing.derived.total_secondary += incoming.derived.total_secondary
    existing.derived.average = _average(
        existing.derived.total_secondary, len(existing.details)
    )


def merge(
    records: Iterable[Union[PartialRecord, IndexedRecord]],
    *,
    now: Optional[datetime] = None,
) -> Aggregate:
    """Fold partial records into one aggregate.

    Args:
        records: Either ``PartialRecord`` objects already in segment order,
            or ``(segment_index, PartialRecord)`` pairs in any order.
        now: Timestamp for ``metadata.extraction_timestamp``; defaults to the
            current UTC time.

    Raises:
        MergeError: On duplicate segment indices or a ledger without an
            identity id.
    """
    aggregate = Aggregate(
        metadata=DocumentMetadata(extraction_timestamp=now or datetime.now(timezone.utc))
    )
    seen_ids: set[str] = set()
    totals = OverallTotals()

    for segment_index, record in _ordered(records):
        for identity in record.identities:
            if identity.id not in seen_ids:
                seen_ids.add(identity.id)
                aggregate.identities.append(identity.model_copy(deep=True))

        for ledger in record.ledgers:
            if not ledger.identity_id:
                raise MergeError(f"Segment {segment_index} has a ledger without identity id")
            existing = aggregate.ledgers.get(ledger.identity_id)
            if existing is None:
                aggregate.ledgers[ledger.identity_id] = ledger.model_copy(deep=True)
            else:
                _extend_ledger(existing, ledger)

        if record.overall_totals is not None:
            totals.total_primary += record.overall_totals.total_primary
            totals.total_secondary += record.overall_totals.total_secondary
            if totals.source_location is None:
                totals.source_location = record.overall_totals.source_location

        meta = record.metadata
        if meta is not None:
            if not aggregate.metadata.document_date and meta.document_date:
                aggregate.metadata.document_date = meta.document_date
            if not aggregate.metadata.period and meta.period:
                aggregate.metadata.period = meta.period

    aggregate.overall_totals = totals
    logger.info(
        "Merged %d identities, %d ledgers; overall totals %s / %s",
        len(aggregate.identities), len(aggregate.ledgers),
        totals.total_primary, totals.total_secondary,
    )
    return aggregate
