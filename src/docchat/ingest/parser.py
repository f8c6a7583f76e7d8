"""Document parsing with page-boundary tracking."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from docchat.errors import ParseFailure

from .extractors import DocxExtractor, PDFExtractor, TextExtractor
from .format_detection import DocumentFormat, DocumentFormatDetector
from .models import PageContent, ParsedDocument
from .normalization import normalize_text

LOGGER = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n"


def build_parsed_document(raw_pages: Iterable[str]) -> ParsedDocument:
    """Normalise page texts and record each page's span in the joined text."""

    pages: List[PageContent] = []
    texts: List[str] = []
    offset = 0
    for page_number, raw_text in enumerate(raw_pages, start=1):
        text = normalize_text(raw_text)
        if page_number > 1:
            offset += len(PAGE_SEPARATOR)
        pages.append(
            PageContent(
                page_number=page_number,
                text=text,
                char_start=offset,
                char_end=offset + len(text),
            )
        )
        texts.append(text)
        offset += len(text)
    return ParsedDocument(full_text=PAGE_SEPARATOR.join(texts), pages=pages)


class DocumentParser:
    """Turn document bytes into cleaned text annotated with page spans."""

    def __init__(
        self,
        *,
        pdf_extractor: Optional[PDFExtractor] = None,
        docx_extractor: Optional[DocxExtractor] = None,
        text_extractor: Optional[TextExtractor] = None,
    ) -> None:
        self.pdf_extractor = pdf_extractor or PDFExtractor()
        self.docx_extractor = docx_extractor or DocxExtractor()
        self.text_extractor = text_extractor or TextExtractor()

    def parse(self, data: bytes, mime_type: str) -> str:
        return self.parse_with_pages(data, mime_type).full_text

    def parse_with_pages(self, data: bytes, mime_type: str) -> ParsedDocument:
        document_format = DocumentFormatDetector.from_mime(mime_type)
        try:
            raw_pages = self._extract_pages(data, document_format)
        except Exception as error:
            LOGGER.exception("%s parsing error", document_format.value.upper())
            raise ParseFailure(
                f"Failed to parse {document_format.value.upper()} document", cause=error
            ) from error

        parsed = build_parsed_document(raw_pages)
        LOGGER.info(
            "Parsed %s document: %s pages, %s characters",
            document_format.value,
            parsed.total_pages,
            len(parsed.full_text),
        )
        return parsed

    def _extract_pages(self, data: bytes, document_format: DocumentFormat) -> List[str]:
        if document_format is DocumentFormat.PDF:
            return self.pdf_extractor.extract(data)
        if document_format is DocumentFormat.DOCX:
            return self.docx_extractor.extract(data)
        return self.text_extractor.extract(data)
