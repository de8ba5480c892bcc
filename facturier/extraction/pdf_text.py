"""Raw text recovery from supplier PDFs via pdfplumber."""

from __future__ import annotations

import logging
from pathlib import Path

import pdfplumber

from facturier.errors import TextExtractionError

logger = logging.getLogger(__name__)

PAGE_BREAK = "\f"


def extract_text(file_path: str | Path) -> str:
    """Text of every page, pages separated by form feeds so extractors can tell them apart."""
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"PDF not found: {file_path}")

    pages = []
    with pdfplumber.open(file_path) as pdf:
        for page_num, page in enumerate(pdf.pages):
            page_text = page.extract_text() or ""
            logger.debug(f"Page {page_num + 1} text length: {len(page_text)}")
            pages.append(page_text)

    text = PAGE_BREAK.join(pages)
    if not text.strip():
        raise TextExtractionError(f"No text found in {file_path.name} (scanned document?)")
    logger.info(f"Extracted {len(text)} characters from {len(pages)} pages of {file_path.name}")
    return text
