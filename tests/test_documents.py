# tests/test_documents.py
"""Tests for document models and the page-text loader."""

import pytest


class TestPageModels:

    def test_page_range_rejects_inverted_span(self):
        from ledgerx.documents.models import PageRange
        with pytest.raises(ValueError):
            PageRange(start=3, end=2)

    def test_loaded_document_properties(self, tmp_path):
        from ledgerx.documents.models import LoadedDocument, PageText
        doc = LoadedDocument(
            source_path=tmp_path / "x.txt",
            format="txt",
            pages=[PageText(1, "hello "), PageText(2, "world")],
        )
        assert doc.page_count == 2
        assert doc.text == "hello world"
        assert not doc.is_empty
        assert doc.page_text_map() == {1: "hello ", 2: "world"}

    def test_whitespace_document_is_empty(self, tmp_path):
        from ledgerx.documents.models import LoadedDocument, PageText
        doc = LoadedDocument(source_path=tmp_path / "x.txt", format="txt", pages=[PageText(1, "  \n")])
        assert doc.is_empty


class TestSplitPages:

    def test_form_feed_separates_pages(self):
        from ledgerx.documents.loader import split_pages
        pages = split_pages("first\fsecond\fthird")
        assert [p.page_number for p in pages] == [1, 2, 3]
        assert [p.text for p in pages] == ["first", "second", "third"]

    def test_trailing_form_feed_adds_no_page(self):
        from ledgerx.documents.loader import split_pages
        assert len(split_pages("a\fb\f")) == 2

    def test_no_form_feed_is_single_page(self):
        from ledgerx.documents.loader import split_pages
        pages = split_pages("just one page")
        assert len(pages) == 1
        assert pages[0].page_number == 1

    def test_empty_text(self):
        from ledgerx.documents.loader import split_pages
        assert split_pages("") == []


class TestLoadDocument:

    def test_load_text_file(self, tmp_path):
        from ledgerx.documents.loader import load_document
        path = tmp_path / "statement.txt"
        path.write_text("Page one\fPage two", encoding="utf-8")
        doc = load_document(path)
        assert doc.format == "txt"
        assert doc.page_count == 2
        assert doc.pages[1].text == "Page two"

    def test_load_markdown_file(self, tmp_path):
        from ledgerx.documents.loader import load_pages
        path = tmp_path / "notes.md"
        path.write_text("# Ledger", encoding="utf-8")
        assert load_pages(path)[0].text == "# Ledger"

    def test_missing_file(self, tmp_path):
        from ledgerx.documents.loader import load_document
        with pytest.raises(FileNotFoundError):
            load_document(tmp_path / "nope.txt")

    def test_unsupported_format(self, tmp_path):
        from ledgerx.documents.loader import load_document
        from ledgerx.documents.models import DocumentLoadError
        path = tmp_path / "sheet.xlsx"
        path.write_bytes(b"PK")
        with pytest.raises(DocumentLoadError, match="Unsupported format"):
            load_document(path)

    def test_undecodable_text(self, tmp_path):
        from ledgerx.documents.loader import load_document
        from ledgerx.documents.models import DocumentLoadError
        path = tmp_path / "bad.txt"
        path.write_bytes(b"\xff\xfe\xfa")
        with pytest.raises(DocumentLoadError):
            load_document(path)

    def test_corrupt_pdf(self, tmp_path):
        pytest.importorskip("pypdfium2")
        from ledgerx.documents.loader import load_document
        from ledgerx.documents.models import DocumentLoadError
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"this is not a pdf")
        with pytest.raises(DocumentLoadError):
            load_document(path)
