"""Document parsing and chunking."""
from __future__ import annotations

from .chunking import ChunkingConfig, RecursiveTextChunker, chunk_text, chunk_with_pages, estimate_tokens
from .models import ChunkWithPageInfo, PageContent, ParsedDocument
from .parser import DocumentParser
from .pipeline import IngestPipeline, IngestPipelineConfig, PreparedDocument

__all__ = [
    "ChunkWithPageInfo",
    "ChunkingConfig",
    "DocumentParser",
    "IngestPipeline",
    "IngestPipelineConfig",
    "PageContent",
    "ParsedDocument",
    "PreparedDocument",
    "RecursiveTextChunker",
    "chunk_text",
    "chunk_with_pages",
    "estimate_tokens",
]
