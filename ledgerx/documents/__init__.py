"""Document loading and page-aligned segmentation."""
from .models import DocumentLoadError, LoadedDocument, PageRange, PageText, Segment
from .loader import load_document, load_pages, split_pages
from .segmenter import segment_pages

__all__ = [
    "DocumentLoadError",
    "LoadedDocument",
    "PageRange",
    "PageText",
    "Segment",
    "load_document",
    "load_pages",
    "split_pages",
    "segment_pages",
]
