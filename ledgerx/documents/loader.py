# ledgerx/documents/loader.py
"""Page-text source: turns a document on disk into ordered page texts.

Routes documents through the appropriate loading path:
- .txt/.md: direct read, pages separated by form feeds (``\\f``)
- .pdf: native text layer via pypdfium2, one entry per PDF page

OCR is deliberately not attempted; scanned PDFs without a text layer load
with empty pages.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .models import DocumentLoadError, LoadedDocument, PageText

logger = logging.getLogger(__name__)

TEXT_FORMATS = frozenset({".txt", ".md", ".markdown"})
PDF_FORMATS = frozenset({".pdf"})
SUPPORTED_FORMATS = TEXT_FORMATS | PDF_FORMATS

PAGE_BREAK = "\f"


def load_document(path: Path) -> LoadedDocument:
    """Load a document from disk as per-page text.

    Parameters
    ----------
    path : Path to the document.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Document not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        raise DocumentLoadError(
            f"Unsupported format '{suffix}'. Supported: {sorted(SUPPORTED_FORMATS)}"
        )

    if suffix in TEXT_FORMATS:
        return _load_text(path, suffix.lstrip("."))
    return _load_pdf(path)


def load_pages(path: Path) -> list[PageText]:
    """Shortcut returning only the ordered pages of a document."""
    return load_document(path).pages


def split_pages(text: str) -> list[PageText]:
    """Split form-feed separated text into numbered pages.

    A trailing form feed does not produce an extra empty page.
    """
    if not text:
        return []
    chunks = text.split(PAGE_BREAK)
    if len(chunks) > 1 and chunks[-1] == "":
        chunks = chunks[:-1]
    return [PageText(page_number=i + 1, text=chunk) for i, chunk in enumerate(chunks)]


def _load_text(path: Path, fmt: str) -> LoadedDocument:
    """Load a plain text file."""
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise DocumentLoadError(f"Cannot decode {path.name} as UTF-8: {exc}") from exc
    return LoadedDocument(source_path=path, format=fmt, pages=split_pages(text))


def _load_pdf(path: Path) -> LoadedDocument:
    """Read the native text layer of every PDF page."""
    import pypdfium2

    try:
        pdf = pypdfium2.PdfDocument(str(path))
    except pypdfium2.PdfiumError as exc:
        raise DocumentLoadError(f"Failed to open PDF {path.name}: {exc}") from exc

    pages: list[PageText] = []
    try:
        for i, page in enumerate(pdf):
            tp = page.get_textpage()
            pages.append(PageText(page_number=i + 1, text=tp.get_text_bounded()))
            tp.close()
            page.close()
    finally:
        pdf.close()

    if not any(p.text.strip() for p in pages):
        logger.warning("PDF %s has no native text layer; pages are empty", path.name)

    return LoadedDocument(
        source_path=path,
        format="pdf",
        pages=pages,
        metadata={"page_count": len(pages)},
    )
