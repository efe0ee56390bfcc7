# ledgerx/pipeline.py
"""End-to-end segment -> extract -> merge -> verify pipeline.

:func:`run_pipeline` never raises for pipeline-level failures; it returns a
:class:`PipelineResult` whose ``status`` is one of

- ``completed``: an aggregate and a validation report are available;
- ``failed``: a structural error (segmentation, merge) or, under the default
  policy, any failed segment; ``error`` carries the taxonomy;
- ``aborted``: cooperative cancellation; no aggregate is returned.

Call :meth:`PipelineResult.raise_for_status` to turn the latter two into
exceptions.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Sequence

from .config import get_config
from .documents.models import PageText, Segment
from .documents.segmenter import segment_pages
from .envelope import build_envelope
from .errors import CancelledError, LedgerxError, SegmentFailuresError
from .extraction.dispatcher import (
    CancelToken,
    Dispatcher,
    ProgressCallback,
    ResultCallback,
    SegmentResult,
    SlotStatus,
)
from .extraction.merge import merge
from .extraction.models import Aggregate
from .extraction.oracle import Oracle
from .extraction.retry import RetryPolicy
from .metrics import PipelineMetrics, track_step
from .utils.logging import log_pipeline_complete, log_pipeline_start
from .verify.checker import verify
from .verify.models import ValidationReport

logger = logging.getLogger(__name__)

PipelineStatus = Literal["completed", "failed", "aborted"]


@dataclass
class PipelineResult:
    """Terminal state of one pipeline run."""

    status: PipelineStatus
    aggregate: Optional[Aggregate] = None
    validation: Optional[ValidationReport] = None
    segments: list[Segment] = field(default_factory=list)
    slots: list[SegmentResult] = field(default_factory=list)
    skipped_segments: list[int] = field(default_factory=list)
    error: Optional[LedgerxError] = None
    metrics: PipelineMetrics = field(default_factory=PipelineMetrics)
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "completed"

    def raise_for_status(self) -> None:
        if self.status == "aborted":
            raise self.error or CancelledError("pipeline run was cancelled")
        if self.status == "failed" and self.error is not None:
            raise self.error

    def to_dict(self, *, document: dict[str, Any] | None = None) -> dict[str, Any]:
        """Self-describing export artifact for downstream consumers."""
        out: dict[str, Any] = {
            "status": self.status,
            "aggregate": self.aggregate.to_dict() if self.aggregate else None,
            "validation": self.validation.to_dict() if self.validation else None,
        }
        if self.error is not None:
            out["error"] = {
                "type": type(self.error).__name__,
                "message": str(self.error),
                "segments": getattr(self.error, "segment_indices", None),
            }
        if self.skipped_segments:
            out["skipped_segments"] = list(self.skipped_segments)
        out["_ledgerx"] = build_envelope(
            pipeline="segment-extract-merge-verify",
            duration_s=round(self.duration_s, 3),
            tokens=self.metrics.tokens(),
            segments={
                "total": len(self.segments),
                "ok": sum(1 for s in self.slots if s.status is SlotStatus.OK),
                "failed": sum(1 for s in self.slots if s.status is SlotStatus.FAILED),
                "cancelled": sum(1 for s in self.slots if s.status is SlotStatus.CANCELLED),
            },
            verification=self.validation.summary() if self.validation else None,
            document=document,
        )
        return out


def run_pipeline(
    pages: Sequence[PageText],
    oracle: Oracle,
    *,
    max_segment_chars: Optional[int] = None,
    concurrency_limit: Optional[int] = None,
    retry_policy: Optional[RetryPolicy] = None,
    fail_on_segment_error: Optional[bool] = None,
    cancel_token: Optional[CancelToken] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_result: Optional[ResultCallback] = None,
    document_name: str = "<pages>",
) -> PipelineResult:
    """Segment, extract, merge and verify one document.

    Unset options fall back to :func:`ledgerx.config.get_config`.  The same
    ``pages`` are used for segmentation and verification and are never
    modified.
    """
    cfg = get_config()
    max_chars = max_segment_chars if max_segment_chars is not None else cfg.segment_max_chars
    workers = concurrency_limit if concurrency_limit is not None else cfg.concurrency_limit
    fatal_failures = (
        fail_on_segment_error if fail_on_segment_error is not None else cfg.fail_on_segment_error
    )
    retry = retry_policy or RetryPolicy.from_config(cfg)
    token = cancel_token or CancelToken()

    metrics = PipelineMetrics()
    t0 = time.perf_counter()
    result = PipelineResult(status="failed", metrics=metrics)

    try:
        with track_step(metrics, "Segment pages"):
            result.segments = segment_pages(pages, max_chars)
        log_pipeline_start(
            logger, document_name, len(pages), len(result.segments),
            getattr(oracle, "model", type(oracle).__name__),
        )

        if token.cancelled:
            raise CancelledError("cancelled before dispatch")

        dispatcher = Dispatcher(oracle, concurrency_limit=workers, retry_policy=retry)
        with track_step(metrics, "Dispatch segments"):
            result.slots = dispatcher.dispatch(
                result.segments,
                cancel_token=token,
                on_progress=on_progress,
                on_result=on_result,
            )

        if token.cancelled:
            raise CancelledError(
                f"cancelled after {sum(1 for s in result.slots if s.ok)} "
                f"of {len(result.segments)} segment(s) completed"
            )

        failures = [s.error for s in result.slots if s.status is SlotStatus.FAILED and s.error]
        if failures and fatal_failures:
            raise SegmentFailuresError(failures)
        result.skipped_segments = [f.segment_index for f in failures]

        with track_step(metrics, "Merge records"):
            aggregate = merge((s.segment_index, s.record) for s in result.slots if s.ok)

        page_text = {p.page_number: p.text for p in pages}
        with track_step(metrics, "Verify against source"):
            validation = verify(aggregate, page_text)
        for failure in failures:
            validation.add_warning(f"segment {failure.segment_index} skipped: {failure.message}")

        result.aggregate = aggregate
        result.validation = validation
        result.status = "completed"
    except CancelledError as exc:
        result.status = "aborted"
        result.error = exc
        logger.warning("Pipeline aborted: %s", exc)
    except LedgerxError as exc:
        result.status = "failed"
        result.error = exc
        logger.error("Pipeline failed: %s: %s", type(exc).__name__, exc)
    finally:
        result.duration_s = time.perf_counter() - t0

    log_pipeline_complete(
        logger, result.status, result.duration_s,
        len(result.aggregate.identities) if result.aggregate else None,
    )
    return result
