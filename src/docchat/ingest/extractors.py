"""Extractors for supported document types.

Each extractor returns the raw text of every physical page; normalisation and
span bookkeeping happen in :mod:`docchat.ingest.parser`.
"""
from __future__ import annotations

import io
import logging
from typing import Iterator, List, Tuple

from docx import Document as load_docx
from pdfminer.high_level import extract_pages
from pdfminer.layout import LAParams, LTTextContainer, LTTextLine

LOGGER = logging.getLogger(__name__)


class PDFExtractor:
    """Extract text from PDF documents page by page.

    Text lines reported by pdfminer's layout analysis are emitted in reading
    order. Lines whose vertical position differs from the previous one by more
    than ``line_tolerance`` points start a new output line; lines sharing a
    baseline (e.g. table cells) are joined with a space.
    """

    def __init__(self, line_tolerance: float = 2.0, laparams: LAParams | None = None) -> None:
        self.line_tolerance = line_tolerance
        self.laparams = laparams or LAParams()

    def extract(self, data: bytes) -> List[str]:
        pages: List[str] = []
        for page_layout in extract_pages(io.BytesIO(data), laparams=self.laparams):
            text = self._render_lines(self._iter_lines(page_layout))
            LOGGER.debug("Extracted %s characters from PDF page %s", len(text), page_layout.pageid)
            pages.append(text)
        return pages

    def _iter_lines(self, container) -> Iterator[Tuple[str, float]]:
        for element in container:
            if isinstance(element, LTTextLine):
                yield element.get_text().rstrip("\n"), float(element.y0)
            elif isinstance(element, LTTextContainer):
                yield from self._iter_lines(element)

    def _render_lines(self, lines: Iterator[Tuple[str, float]]) -> str:
        parts: List[str] = []
        last_y: float | None = None
        for text, y in lines:
            if last_y is None:
                parts.append(text)
            elif abs(y - last_y) <= self.line_tolerance:
                parts.append(" " + text)
            else:
                parts.append("\n" + text)
            last_y = y
        return "".join(parts)


class DocxExtractor:
    """Extract text from Microsoft Word documents as a single page."""

    def extract(self, data: bytes) -> List[str]:
        document = load_docx(io.BytesIO(data))
        paragraphs = [paragraph.text for paragraph in document.paragraphs if paragraph.text]
        return ["\n\n".join(paragraphs)]


class TextExtractor:
    """Extract text from plaintext and Markdown documents as a single page."""

    def extract(self, data: bytes) -> List[str]:
        try:
            return [data.decode("utf-8-sig")]
        except UnicodeDecodeError:
            LOGGER.info("Text document is not valid UTF-8; decoding as latin-1")
            return [data.decode("latin-1")]
