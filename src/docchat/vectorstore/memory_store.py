"""Thread-safe in-memory chunk store."""
from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Sequence

from docchat.embeddings import cosine_similarity
from docchat.errors import VectorSearchFailure
from docchat.models import Chunk, ScoredChunk
from docchat.telemetry import emit_vectorstore_event

LOGGER = logging.getLogger(__name__)


class InMemoryChunkStore:
    """Keeps chunks in a dict and ranks them by cosine similarity."""

    backend = "memory"

    def __init__(self) -> None:
        self._chunks: Dict[str, Chunk] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._chunks)

    def insert_chunk(self, chunk: Chunk) -> None:
        self.insert_chunks([chunk])

    def insert_chunks(self, chunks: Iterable[Chunk]) -> int:
        items = list(chunks)
        with self._lock:
            for chunk in items:
                self._chunks[chunk.id] = chunk
        emit_vectorstore_event("vectorstore.insert", backend=self.backend, count=len(items))
        return len(items)

    def delete_document_chunks(self, document_id: str) -> int:
        with self._lock:
            doomed = [chunk_id for chunk_id, chunk in self._chunks.items() if chunk.document_id == document_id]
            for chunk_id in doomed:
                del self._chunks[chunk_id]
        emit_vectorstore_event(
            "vectorstore.delete", backend=self.backend, count=len(doomed), document_id=document_id
        )
        return len(doomed)

    def replace_document_chunks(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        """Swap a document's chunk set in one step; readers see old or new, never both."""

        with self._lock:
            self.delete_document_chunks(document_id)
            return self.insert_chunks(chunks)

    def query_by_scope(
        self,
        scope_id: str,
        *,
        limit: Optional[int] = None,
        document_id: Optional[str] = None,
    ) -> List[Chunk]:
        with self._lock:
            selected = [
                chunk
                for chunk in self._chunks.values()
                if chunk.scope_id == scope_id and (document_id is None or chunk.document_id == document_id)
            ]
        selected.sort(key=lambda chunk: (chunk.document_id, chunk.chunk_index))
        if limit is not None:
            selected = selected[:limit]
        return selected

    def match_chunks(
        self,
        embedding: Sequence[float],
        threshold: float,
        limit: int,
        scope_id: str,
    ) -> List[ScoredChunk]:
        if limit <= 0:
            return []
        with self._lock:
            candidates = [
                chunk for chunk in self._chunks.values() if chunk.scope_id == scope_id and chunk.embedding
            ]
        try:
            scored = [ScoredChunk(chunk, cosine_similarity(embedding, chunk.embedding)) for chunk in candidates]
        except ValueError as error:
            emit_vectorstore_event(
                "vectorstore.match", backend=self.backend, count=0, scope_id=scope_id, error=error
            )
            raise VectorSearchFailure("Vector search failed", cause=error) from error

        matches = [item for item in scored if item.score > threshold]
        matches.sort(key=lambda item: item.score, reverse=True)
        LOGGER.debug("Matched %s of %s chunks in scope %s", len(matches), len(candidates), scope_id)
        return matches[:limit]


__all__ = ["InMemoryChunkStore"]
