"""Exception taxonomy for the extraction pipeline.

Segmentation and merge errors are structural and always abort the run.
Extraction errors are captured per segment by the dispatcher; whether they
abort the run is decided by the pipeline policy.  Verification findings are
never raised, they live in :class:`ledgerx.verify.models.ValidationReport`.
"""

from __future__ import annotations


class LedgerxError(Exception):
    """Base class for all pipeline errors."""


class SegmentationError(LedgerxError):
    """Raised when page input cannot be segmented (e.g. bad page numbers)."""


class ExtractionError(LedgerxError):
    """The oracle failed for a single segment.

    ``retryable`` marks transient failures (timeouts, transport errors,
    rate limits) that a retry policy may attempt again.
    """

    def __init__(
        self,
        message: str,
        *,
        segment_index: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.segment_index = segment_index
        self.retryable = retryable
        self.attempts = 1

    def __str__(self) -> str:
        if self.segment_index is None:
            return self.message
        return f"segment {self.segment_index}: {self.message}"


class SegmentFailuresError(LedgerxError):
    """One or more segments failed and the run policy treats that as fatal."""

    def __init__(self, failures: list[ExtractionError]) -> None:
        self.failures = list(failures)
        indices = ", ".join(str(f.segment_index) for f in self.failures)
        super().__init__(
            f"{len(self.failures)} segment(s) failed extraction (segments: {indices})"
        )

    @property
    def segment_indices(self) -> list[int]:
        return [f.segment_index for f in self.failures if f.segment_index is not None]


class CancelledError(LedgerxError):
    """Cooperative cancellation was observed; no aggregate is produced."""


class MergeError(LedgerxError):
    """A partial record is structurally unusable for the merge fold."""
