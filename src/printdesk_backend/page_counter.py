"""Page counting for uploaded attachments, resilient to malformed PDFs."""

from __future__ import annotations

import logging
from io import BytesIO

from pypdf import PdfReader

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"

DEFAULT_PAGE_COUNT = 1


def count_pages(data: bytes, content_type: str) -> int:
    """
    Return the page count of an attachment.

    PDFs are parsed and their page tree counted; every other type counts as
    a single page. A PDF that cannot be parsed also counts as one page.
    """
    if content_type != PDF_MIME_TYPE:
        return DEFAULT_PAGE_COUNT

    try:
        reader = PdfReader(BytesIO(data))
        pages = len(reader.pages)
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"PDF page count failed, defaulting to {DEFAULT_PAGE_COUNT}: {exc}")
        return DEFAULT_PAGE_COUNT

    return max(pages, DEFAULT_PAGE_COUNT)
