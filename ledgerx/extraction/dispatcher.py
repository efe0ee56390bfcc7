"""Concurrent dispatch of segments to the extraction oracle.

The dispatcher runs a bounded thread pool: at most ``concurrency_limit``
oracle calls are in flight and the next queued segment starts as soon as a
worker frees up.  Every segment owns one result slot, positionally aligned
with the input, so completion order never leaks into downstream merging.

Failures are isolated per slot.  A segment whose oracle call fails ends in
a ``failed`` slot carrying its :class:`ExtractionError`; siblings keep
running.  Whether a failed slot is fatal is decided by the caller.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from ..documents.models import Segment
from ..errors import CancelledError, ExtractionError
from ..utils.logging import log_segment_dispatch, log_segment_failure, log_text_content
from .models import PartialRecord
from .oracle import Oracle, SegmentContext, is_transient_error, record_from_payload
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]
ResultCallback = Callable[[Segment, PartialRecord], None]


class CancelToken:
    """Cooperative cancellation signal shared by the caller and the workers."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds; return early (``True``) on cancel."""
        return self._event.wait(timeout)


class SlotStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class SegmentResult:
    """Outcome of one segment's oracle call."""

    segment: Segment
    status: SlotStatus
    record: Optional[PartialRecord] = None
    error: Optional[ExtractionError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status is SlotStatus.OK

    @property
    def segment_index(self) -> int:
        return self.segment.segment_index


class _Progress:
    """Completion counter; callbacks fire under the lock so reported
    fractions never go backwards."""

    def __init__(
        self,
        total: int,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        self.total = total
        self.completed = 0
        self._on_progress = on_progress
        self._lock = threading.Lock()

    def advance(self, after: Optional[Callable[[], None]] = None) -> None:
        with self._lock:
            self.completed += 1
            if after is not None:
                _notify(after, "on_result")
            if self._on_progress is not None:
                fraction = self.completed / self.total
                _notify(lambda: self._on_progress(fraction), "on_progress")


def _notify(callback: Callable[[], None], name: str) -> None:
    # Observer errors are logged; they never change a slot's outcome.
    try:
        callback()
    except Exception:
        logger.exception("%s callback raised; continuing dispatch", name)


class Dispatcher:
    """Bounded worker pool that maps segments to partial records."""

    MAX_WORKERS = 32

    def __init__(
        self,
        oracle: Oracle,
        concurrency_limit: int = 4,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.oracle = oracle
        self.concurrency_limit = min(max(1, concurrency_limit), self.MAX_WORKERS)
        self.retry_policy = retry_policy or RetryPolicy.no_retry()

    def dispatch(
        self,
        segments: Sequence[Segment],
        *,
        cancel_token: Optional[CancelToken] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> list[SegmentResult]:
        """Extract every segment and return one result per input position.

        Args:
            segments: Segments in canonical order.
            cancel_token: Checked before each call starts and after it
                returns; once set, unstarted segments are skipped and
                in-flight results are discarded.
            on_progress: Receives ``completed / total`` after every terminal
                (ok or failed) slot.  Never called for zero segments.
            on_result: Receives each successful record as it arrives.

        Returns:
            ``SegmentResult`` list aligned with ``segments``.
        """
        total = len(segments)
        if total == 0:
            return []

        token = cancel_token or CancelToken()
        progress = _Progress(total, on_progress)
        results: list[Optional[SegmentResult]] = [None] * total

        def _run(position: int, segment: Segment) -> None:
            results[position] = self._run_one(segment, total, token, progress, on_result)

        logger.info(
            "Dispatching %d segment(s) with %d worker(s)", total, self.concurrency_limit
        )
        with ThreadPoolExecutor(max_workers=self.concurrency_limit) as pool:
            futures = [pool.submit(_run, i, seg) for i, seg in enumerate(segments)]
            for future in futures:
                future.result()

        final = [r for r in results if r is not None]
        counts = {s: sum(1 for r in final if r.status is s) for s in SlotStatus}
        logger.info(
            "Dispatch finished: %d ok, %d failed, %d cancelled",
            counts[SlotStatus.OK], counts[SlotStatus.FAILED], counts[SlotStatus.CANCELLED],
        )
        return final

    def _run_one(
        self,
        segment: Segment,
        total: int,
        token: CancelToken,
        progress: _Progress,
        on_result: Optional[ResultCallback],
    ) -> SegmentResult:
        if token.cancelled:
            return SegmentResult(segment=segment, status=SlotStatus.CANCELLED)

        context = SegmentContext.for_segment(segment, total)
        log_text_content(logger, context.header(), segment.text)

        def _attempt(attempt: int) -> PartialRecord:
            log_segment_dispatch(
                logger, segment.segment_index,
                segment.page_range.start, segment.page_range.end, attempt,
            )
            try:
                raw = self.oracle.extract(segment.text, context)
            except ExtractionError as exc:
                exc.segment_index = segment.segment_index
                raise
            except Exception as exc:
                raise ExtractionError(
                    f"{type(exc).__name__}: {exc}",
                    segment_index=segment.segment_index,
                    retryable=is_transient_error(exc),
                ) from exc
            return record_from_payload(raw, segment_index=segment.segment_index)

        try:
            record, attempts = self.retry_policy.call(
                _attempt, should_stop=lambda: token.cancelled, wait=token.wait
            )
        except CancelledError:
            return SegmentResult(segment=segment, status=SlotStatus.CANCELLED)
        except ExtractionError as exc:
            if token.cancelled:
                return SegmentResult(
                    segment=segment, status=SlotStatus.CANCELLED, attempts=exc.attempts
                )
            log_segment_failure(logger, segment.segment_index, exc.message, exc.attempts)
            progress.advance()
            return SegmentResult(
                segment=segment, status=SlotStatus.FAILED, error=exc, attempts=exc.attempts
            )

        if token.cancelled:
            # Finished after cancellation: the cost is sunk, the result is dropped.
            logger.info("Discarding segment %d result (cancelled)", segment.segment_index)
            return SegmentResult(segment=segment, status=SlotStatus.CANCELLED, attempts=attempts)

        after = None
        if on_result is not None:
            after = lambda: on_result(segment, record)  # noqa: E731
        progress.advance(after)
        return SegmentResult(
            segment=segment, status=SlotStatus.OK, record=record, attempts=attempts
        )
