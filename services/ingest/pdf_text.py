"""PDF text-layer extraction using PyMuPDF.

Flattens a PDF into plain text: words within a page are joined by a single
space, pages are joined by a newline, and the result is stripped. Scanned
documents without a text layer yield an empty string; no OCR is attempted.
"""

import asyncio
import logging

import fitz  # PyMuPDF

from services.shared.errors import DocumentParseError

logger = logging.getLogger(__name__)


def _page_text(page: fitz.Page) -> str:
    # words come back as (x0, y0, x1, y1, word, block_no, line_no, word_no)
    return " ".join(word[4] for word in page.get_text("words"))


def extract_text(data: bytes) -> str:
    """Extract the text layer of a PDF held in memory.

    Args:
        data: PDF bytes

    Returns:
        Flattened text, "" for documents without pages or text layer

    Raises:
        DocumentParseError: If the bytes are not a readable PDF
    """
    if not data:
        raise DocumentParseError("document is empty")

    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (fitz.FileDataError, RuntimeError, ValueError) as e:
        raise DocumentParseError("PDF file is corrupted or not a PDF", e) from e

    try:
        if doc.needs_pass:
            raise DocumentParseError("PDF is encrypted")

        pages = [_page_text(page) for page in doc]
    except RuntimeError as e:
        raise DocumentParseError("unable to read PDF pages", e) from e
    finally:
        doc.close()

    text = "\n".join(pages).strip()
    logger.debug(f"Extracted {len(text)} characters from {len(pages)} page(s)")
    return text


async def extract_text_async(data: bytes) -> str:
    """Run extract_text in a worker thread so the event loop stays free."""
    return await asyncio.to_thread(extract_text, data)
