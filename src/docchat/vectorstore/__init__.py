"""Chunk stores backed by pluggable backends."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Iterable, List, Optional, Protocol, Sequence

from docchat.config import get_settings
from docchat.models import Chunk, ScoredChunk

from .memory_store import InMemoryChunkStore

LOGGER = logging.getLogger(__name__)


class ChunkStore(Protocol):
    """Storage and similarity search for document chunks."""

    def insert_chunk(self, chunk: Chunk) -> None:
        ...

    def insert_chunks(self, chunks: Iterable[Chunk]) -> int:
        ...

    def delete_document_chunks(self, document_id: str) -> int:
        ...

    def replace_document_chunks(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        ...

    def query_by_scope(
        self,
        scope_id: str,
        *,
        limit: Optional[int] = None,
        document_id: Optional[str] = None,
    ) -> List[Chunk]:
        ...

    def match_chunks(
        self,
        embedding: Sequence[float],
        threshold: float,
        limit: int,
        scope_id: str,
    ) -> List[ScoredChunk]:
        ...


@lru_cache()
def get_chunk_store() -> ChunkStore:
    """Return a lazily initialised chunk store based on configuration."""

    settings = get_settings()
    backend = settings.vector_store
    if backend == "memory":
        return InMemoryChunkStore()
    if backend == "chroma":
        from .chroma_store import ChromaChunkStore

        LOGGER.info("Using Chroma chunk store at %s", settings.chroma_persist_dir)
        return ChromaChunkStore(settings.chroma_persist_dir, collection_name=settings.chroma_collection)
    raise ValueError(f"Unsupported VECTOR_STORE backend: {backend!r}")


def reset_chunk_store_cache() -> None:
    """Clear the cached chunk store (primarily for testing)."""

    get_chunk_store.cache_clear()  # type: ignore[attr-defined]


__all__ = ["ChunkStore", "InMemoryChunkStore", "get_chunk_store", "reset_chunk_store_cache"]
