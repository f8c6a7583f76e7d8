"""Data models used by the ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(slots=True)
class PageContent:
    """Text extracted from one page, with its half-open span in the full text."""

    page_number: int
    text: str
    char_start: int
    char_end: int


@dataclass(slots=True)
class ParsedDocument:
    """Full extracted text plus the per-page spans that produced it."""

    full_text: str
    pages: List[PageContent] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return len(self.pages)


@dataclass(slots=True)
class ChunkWithPageInfo:
    """A finished chunk together with the pages it was drawn from."""

    content: str
    page_numbers: List[int]
    primary_page: int
    search_text: str
    char_start: int
    char_end: int
