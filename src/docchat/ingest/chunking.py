"""Chunking utilities for breaking text into embedding-friendly units."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from .models import ChunkWithPageInfo, PageContent

LOGGER = logging.getLogger(__name__)

DEFAULT_SEPARATORS: Tuple[str, ...] = ("\n\n", "\n", ". ", " ", "")
SEARCH_TEXT_CHARS = 150


@dataclass(slots=True)
class ChunkingConfig:
    chunk_size: int = 1000
    chunk_overlap: int = 200
    separators: Sequence[str] = field(default=DEFAULT_SEPARATORS)

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.chunk_overlap < 0:
            raise ValueError("chunk_overlap must not be negative")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")


@dataclass(slots=True)
class _Piece:
    content: str
    start: int
    end: int


def estimate_tokens(text: str) -> int:
    """Rough token estimate at four characters per token."""

    return math.ceil(len(text) / 4)


class RecursiveTextChunker:
    """Split text on a hierarchy of separators with character overlap.

    Pieces are accumulated greedily up to ``chunk_size``. A piece that is still
    too large is split again with the next separator; the empty separator cuts
    raw character windows. Every chunk after the first is prefixed with the
    last ``chunk_overlap`` characters of its predecessor, which may cut a word
    in half.

    Splitting works on ``(start, end)`` offsets into the input, so every chunk
    knows exactly which characters it covers even when the text repeats.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(self, text: str) -> List[str]:
        return [piece.content for piece in self._pieces(text)]

    def chunk_with_pages(self, text: str, pages: Sequence[PageContent]) -> List[ChunkWithPageInfo]:
        """Chunk *text* and attribute every chunk to the pages it overlaps."""

        results: List[ChunkWithPageInfo] = []
        for index, piece in enumerate(self._pieces(text)):
            page_numbers, primary_page = self._attribute_pages(piece.start, piece.end, pages)
            results.append(
                ChunkWithPageInfo(
                    content=piece.content,
                    page_numbers=page_numbers,
                    primary_page=primary_page,
                    search_text=piece.content[:SEARCH_TEXT_CHARS].strip(),
                    char_start=piece.start,
                    char_end=piece.end,
                )
            )
            LOGGER.debug("Chunk %s offsets %s-%s pages %s", index, piece.start, piece.end, page_numbers)
        return results

    @staticmethod
    def _attribute_pages(start: int, end: int, pages: Sequence[PageContent]) -> Tuple[List[int], int]:
        page_numbers: List[int] = []
        primary_page = None
        best_overlap = 0
        for page in pages:
            overlap = min(end, page.char_end) - max(start, page.char_start)
            if overlap <= 0:
                continue
            page_numbers.append(page.page_number)
            if overlap > best_overlap:
                best_overlap = overlap
                primary_page = page.page_number
        if primary_page is None:
            return [1], 1
        return page_numbers, primary_page

    def _pieces(self, text: str) -> List[_Piece]:
        spans = self._split(text, 0, len(text), list(self.config.separators))
        overlap = self.config.chunk_overlap
        pieces: List[_Piece] = []
        for index, (start, end) in enumerate(spans):
            raw = text[start:end]
            body = raw.strip()
            if not body:
                continue
            body_start = start + len(raw) - len(raw.lstrip())
            prefix, prefix_start = "", body_start
            if index > 0 and overlap > 0:
                previous_start, previous_end = spans[index - 1]
                window = text[max(previous_start, previous_end - overlap):previous_end]
                prefix = window.lstrip()
                if prefix:
                    prefix_start = previous_end - len(prefix)
            # Chunk content never starts with whitespace.
            pieces.append(
                _Piece(
                    content=prefix + body,
                    start=min(prefix_start, body_start),
                    end=body_start + len(body),
                )
            )
        return pieces

    def _split(self, text: str, start: int, end: int, separators: List[str]) -> List[Tuple[int, int]]:
        if not separators:
            return [(start, end)] if end > start else []
        separator, remaining = separators[0], separators[1:]
        if separator == "":
            return self._split_characters(start, end)

        chunk_size = self.config.chunk_size
        finished: List[Tuple[int, int]] = []
        buffer: Tuple[int, int] | None = None
        split_start = start
        for split in text[start:end].split(separator):
            split_end = split_start + len(split)
            has_buffer = buffer is not None and buffer[1] > buffer[0]
            candidate = split_end - buffer[0] if has_buffer else len(split)
            if candidate <= chunk_size:
                buffer = (buffer[0], split_end) if has_buffer else (split_start, split_end)
            else:
                if has_buffer:
                    finished.append(buffer)
                if len(split) > chunk_size and remaining:
                    finished.extend(self._split(text, split_start, split_end, remaining))
                    buffer = None
                else:
                    buffer = (split_start, split_end)
            split_start = split_end + len(separator)
        if buffer is not None and buffer[1] > buffer[0]:
            finished.append(buffer)
        return finished

    def _split_characters(self, start: int, end: int) -> List[Tuple[int, int]]:
        chunk_size = self.config.chunk_size
        step = chunk_size - self.config.chunk_overlap
        windows: List[Tuple[int, int]] = []
        while start < end:
            window_end = min(start + chunk_size, end)
            windows.append((start, window_end))
            if window_end == end:
                break
            start += step
        return windows


def chunk_text(text: str, config: ChunkingConfig | None = None) -> List[str]:
    return RecursiveTextChunker(config).chunk(text)


def chunk_with_pages(
    text: str,
    pages: Sequence[PageContent],
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
) -> List[ChunkWithPageInfo]:
    config = ChunkingConfig(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
    return RecursiveTextChunker(config).chunk_with_pages(text, pages)
