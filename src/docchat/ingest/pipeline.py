"""High level entry point turning document bytes into page-attributed chunks."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .chunking import ChunkingConfig, RecursiveTextChunker
from .language import LanguageDetector
from .models import ChunkWithPageInfo, ParsedDocument
from .parser import DocumentParser

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestPipelineConfig:
    chunk_size: int = 1000
    chunk_overlap: int = 200


@dataclass(slots=True)
class PreparedDocument:
    parsed: ParsedDocument
    chunks: List[ChunkWithPageInfo] = field(default_factory=list)
    language: Optional[str] = None


class IngestPipeline:
    """Parse, detect language and chunk one document."""

    def __init__(
        self,
        config: Optional[IngestPipelineConfig] = None,
        *,
        parser: Optional[DocumentParser] = None,
        language_detector: Optional[LanguageDetector] = None,
    ) -> None:
        self.config = config or IngestPipelineConfig()
        self.parser = parser or DocumentParser()
        self.chunker = RecursiveTextChunker(
            ChunkingConfig(chunk_size=self.config.chunk_size, chunk_overlap=self.config.chunk_overlap)
        )
        self.language_detector = language_detector or LanguageDetector()

    def prepare(self, data: bytes, mime_type: str, file_name: str = "") -> PreparedDocument:
        parsed = self.parser.parse_with_pages(data, mime_type)
        language = self.language_detector.detect(parsed.full_text)
        chunks = self.chunker.chunk_with_pages(parsed.full_text, parsed.pages)
        LOGGER.info(
            "Generated %s chunks from %s pages for file %s (language=%s)",
            len(chunks),
            parsed.total_pages,
            file_name,
            language,
        )
        return PreparedDocument(parsed=parsed, chunks=chunks, language=language)
