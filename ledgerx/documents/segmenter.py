# ledgerx/documents/segmenter.py
"""Page-aligned segmentation of document text.

Pages are appended to a running buffer; the buffer is closed into a
:class:`Segment` once it reaches ``max_segment_chars`` or the last page is
consumed.  A page is never split, so a single oversized page becomes one
oversized segment.
"""

from __future__ import annotations

import logging
from typing import Sequence

from ..errors import SegmentationError
from .models import PageRange, PageText, Segment

logger = logging.getLogger(__name__)


def _validate_pages(pages: Sequence[PageText]) -> None:
    previous = 0
    for page in pages:
        if page.page_number < 1:
            raise SegmentationError(
                f"Invalid page number {page.page_number}: pages are numbered from 1"
            )
        if page.page_number <= previous:
            raise SegmentationError(
                f"Page {page.page_number} is out of order (follows page {previous})"
            )
        previous = page.page_number


def segment_pages(pages: Sequence[PageText], max_segment_chars: int) -> list[Segment]:
    """Split ordered pages into bounded, page-aligned segments.

    Args:
        pages: Pages in reading order with strictly increasing page numbers.
        max_segment_chars: Buffer length that closes a segment.

    Returns:
        Segments ordered by ``segment_index``.  An empty page list yields an
        empty list.

    Raises:
        SegmentationError: On a non-positive size limit or malformed pages.
    """
    if max_segment_chars <= 0:
        raise SegmentationError(
            f"max_segment_chars must be positive, got {max_segment_chars}"
        )
    _validate_pages(pages)

    segments: list[Segment] = []
    buffer: list[str] = []
    buffered_chars = 0
    first_page: int | None = None
    start_position = 0

    last = len(pages) - 1
    for i, page in enumerate(pages):
        if first_page is None:
            first_page = page.page_number
        buffer.append(page.text)
        buffered_chars += len(page.text)

        if buffered_chars >= max_segment_chars or i == last:
            segments.append(
                Segment(
                    segment_index=len(segments),
                    text="".join(buffer),
                    page_range=PageRange(start=first_page, end=page.page_number),
                    start_position=start_position,
                )
            )
            buffer = []
            buffered_chars = 0
            first_page = None
            start_position += max_segment_chars

    logger.debug(
        "Segmented %d page(s) into %d segment(s) (max %d chars)",
        len(pages), len(segments), max_segment_chars,
    )
    return segments
