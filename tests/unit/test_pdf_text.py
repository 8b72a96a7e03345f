"""Unit tests for PDF text-layer extraction.

PDFs are generated in memory with PyMuPDF.
"""

from unittest.mock import MagicMock, patch

import fitz  # PyMuPDF
import pytest

from services.ingest.pdf_text import extract_text, extract_text_async
from services.shared.errors import DocumentParseError


def make_pdf(*pages: str) -> bytes:
    """Build a PDF with one text line per page ("" gives a blank page)."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


class TestExtractText:
    """Text layer flattening."""

    def test_single_page_words_joined_by_space(self) -> None:
        data = make_pdf("Invoice   INV-001 total 118.00")

        assert extract_text(data) == "Invoice INV-001 total 118.00"

    def test_pages_joined_in_order(self) -> None:
        data = make_pdf("first page", "second page", "third page")

        assert extract_text(data) == "first page\nsecond page\nthird page"

    def test_blank_page_yields_empty_string(self) -> None:
        """A scanned-looking document without a text layer is not an error."""
        assert extract_text(make_pdf("")) == ""

    def test_result_is_stripped(self) -> None:
        data = make_pdf("", "only text", "")

        assert extract_text(data) == "only text"

    def test_zero_pages_yields_empty_string(self) -> None:
        doc = MagicMock()
        doc.needs_pass = False
        doc.__iter__.return_value = iter([])

        with patch("services.ingest.pdf_text.fitz.open", return_value=doc):
            assert extract_text(b"%PDF-1.7") == ""

        doc.close.assert_called_once()


class TestExtractTextErrors:
    """Unreadable input raises DocumentParseError."""

    def test_empty_bytes(self) -> None:
        with pytest.raises(DocumentParseError, match="empty"):
            extract_text(b"")

    def test_garbage_bytes(self) -> None:
        with pytest.raises(DocumentParseError) as exc_info:
            extract_text(b"this is definitely not a pdf")

        assert exc_info.value.kind == "document_parse_error"

    def test_encrypted_pdf(self) -> None:
        doc = fitz.open()
        doc.new_page().insert_text((72, 72), "secret invoice")
        data = doc.tobytes(
            encryption=fitz.PDF_ENCRYPT_AES_256, owner_pw="owner", user_pw="user"
        )
        doc.close()

        with pytest.raises(DocumentParseError, match="encrypted"):
            extract_text(data)


@pytest.mark.asyncio
async def test_extract_text_async() -> None:
    """The async wrapper returns the same text."""
    assert await extract_text_async(make_pdf("hello world")) == "hello world"
