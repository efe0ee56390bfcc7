# ledgerx/documents/models.py
"""Document data models for page loading and segmentation."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..errors import LedgerxError


class DocumentLoadError(LedgerxError):
    """Raised when a document cannot be loaded or parsed."""


@dataclass(frozen=True)
class PageText:
    """Plain text of a single page (page numbers are 1-based)."""

    page_number: int
    text: str


@dataclass(frozen=True)
class PageRange:
    """Inclusive page span covered by a segment."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"page range start {self.start} > end {self.end}")


@dataclass(frozen=True)
class Segment:
    """A page-aligned slice of document text; the unit of oracle dispatch."""

    segment_index: int
    text: str
    page_range: PageRange
    start_position: int

    @property
    def char_count(self) -> int:
        return len(self.text)


@dataclass
class LoadedDocument:
    """A document converted to per-page plain text."""

    source_path: Path
    format: str
    pages: list[PageText] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.pages)

    @property
    def is_empty(self) -> bool:
        return len(self.text.strip()) == 0

    def page_text_map(self) -> dict[int, str]:
        """Map page number to text, as used by the verification checker."""
        return {p.page_number: p.text for p in self.pages}
