"""Scoped passage retrieval: vector search first, keyword overlap as fallback."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

from docchat.embeddings import Embedder
from docchat.errors import DocumentNotFoundError
from docchat.models import Chunk, PageInfo, RetrievalResult, SourceDocument
from docchat.repositories import DocumentRepository
from docchat.telemetry import emit_retriever_event
from docchat.vectorstore import ChunkStore

LOGGER = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
DEFAULT_THRESHOLD = 0.7
MIN_KEYWORD_LENGTH = 3
MAX_KEYWORDS = 5


@dataclass(slots=True)
class VectorHit:
    chunk: Chunk
    score: float


@dataclass(slots=True)
class KeywordHit:
    chunk: Chunk
    score: float
    matched: List[str]


Hit = Union[VectorHit, KeywordHit]


def extract_keywords(query: str) -> List[str]:
    """Lowercase whitespace tokens of three or more characters, first five kept."""

    words = [word for word in query.lower().split() if len(word) >= MIN_KEYWORD_LENGTH]
    return words[:MAX_KEYWORDS]


def score_keywords(content: str, keywords: Sequence[str]) -> Tuple[float, List[str]]:
    if not keywords:
        return 0.0, []
    lowered = content.lower()
    matched = [keyword for keyword in keywords if keyword in lowered]
    return len(matched) / len(keywords), matched


class Retriever:
    """Return ranked passages for one product scope.

    The keyword path runs only after the vector path has finished and either
    failed or found nothing; vector errors are logged, never raised.
    """

    def __init__(
        self,
        embedder: Embedder,
        chunk_store: ChunkStore,
        documents: Optional[DocumentRepository] = None,
        *,
        keyword_candidate_limit: Optional[int] = None,
    ) -> None:
        self.embedder = embedder
        self.chunk_store = chunk_store
        self.documents = documents
        self.keyword_candidate_limit = keyword_candidate_limit

    async def retrieve(
        self,
        query: str,
        scope_id: str,
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> List[RetrievalResult]:
        return await asyncio.to_thread(self.retrieve_sync, query, scope_id, limit, threshold)

    def retrieve_sync(
        self,
        query: str,
        scope_id: str,
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> List[RetrievalResult]:
        started = time.perf_counter()
        hits: List[Hit] = []
        strategy = "vector"
        vector_error: Optional[BaseException] = None

        try:
            hits = list(self._vector_search(query, scope_id, limit, threshold))
        except Exception as error:
            vector_error = error
            LOGGER.warning("Vector search failed for scope %s; using keyword fallback: %s", scope_id, error)

        if not hits:
            strategy = "keyword"
            hits = list(self._keyword_search(query, scope_id, limit))

        results = self._to_results(hits)
        emit_retriever_event(
            query=query,
            scope_id=scope_id,
            limit=limit,
            strategy=strategy,
            results=[
                {
                    "chunk_id": hit.chunk.id,
                    "document_id": hit.chunk.document_id,
                    "score": round(hit.score, 4),
                    "kind": type(hit).__name__,
                }
                for hit in hits
            ],
            duration_ms=(time.perf_counter() - started) * 1000.0,
            vector_error=vector_error,
        )
        return results

    def _vector_search(self, query: str, scope_id: str, limit: int, threshold: float) -> List[VectorHit]:
        embedding = self.embedder.embed(query)
        matches = self.chunk_store.match_chunks(embedding, threshold, limit, scope_id)
        return [VectorHit(chunk=match.chunk, score=match.score) for match in matches]

    def _keyword_search(self, query: str, scope_id: str, limit: int) -> List[KeywordHit]:
        keywords = extract_keywords(query)
        if not keywords:
            return []
        try:
            candidates = self.chunk_store.query_by_scope(scope_id, limit=self.keyword_candidate_limit)
        except Exception as error:
            LOGGER.error("Keyword fallback could not load chunks for scope %s: %s", scope_id, error)
            return []

        hits: List[KeywordHit] = []
        for chunk in candidates:
            score, matched = score_keywords(chunk.content, keywords)
            if score > 0:
                hits.append(KeywordHit(chunk=chunk, score=score, matched=matched))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    def _to_results(self, hits: Sequence[Hit]) -> List[RetrievalResult]:
        sources: Dict[str, Optional[SourceDocument]] = {}
        results: List[RetrievalResult] = []
        for hit in hits:
            document_id = hit.chunk.document_id
            if document_id not in sources:
                sources[document_id] = self._lookup_document(document_id)
            metadata = hit.chunk.metadata
            page_info = None
            if metadata.page_numbers:
                page_info = PageInfo(
                    page_numbers=list(metadata.page_numbers),
                    primary_page=metadata.primary_page,
                    search_text=metadata.search_text,
                )
            results.append(
                RetrievalResult(
                    chunk=hit.chunk,
                    score=hit.score,
                    document=sources[document_id],
                    page_info=page_info,
                )
            )
        return results

    def _lookup_document(self, document_id: str) -> Optional[SourceDocument]:
        if self.documents is None:
            return None
        try:
            document = self.documents.get(document_id)
        except DocumentNotFoundError:
            LOGGER.info("Chunk references unknown document %s", document_id)
            return None
        return SourceDocument(id=document.id, filename=document.filename, file_url=document.file_url)

    def chunks_for_document(self, document_id: str) -> List[Chunk]:
        """Return a document's chunks ordered by ``chunk_index``.

        Raises :class:`DocumentNotFoundError` for unregistered documents.
        """

        if self.documents is None:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        document = self.documents.get(document_id)
        chunks = self.chunk_store.query_by_scope(document.scope_id, document_id=document_id)
        return sorted(chunks, key=lambda chunk: chunk.chunk_index)


__all__ = [
    "DEFAULT_LIMIT",
    "DEFAULT_THRESHOLD",
    "KeywordHit",
    "Retriever",
    "VectorHit",
    "extract_keywords",
    "score_keywords",
]
