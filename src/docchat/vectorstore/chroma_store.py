"""Chroma-backed chunk store."""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import chromadb

from docchat.errors import VectorSearchFailure
from docchat.models import Chunk, ChunkMetadata, ScoredChunk
from docchat.telemetry import emit_vectorstore_event

LOGGER = logging.getLogger(__name__)

DEFAULT_COLLECTION_NAME = "document_chunks"


def _chunk_metadata(chunk: Chunk) -> Dict[str, Any]:
    # Chroma metadata values must be scalars; None values are omitted.
    metadata: Dict[str, Any] = {
        "scope_id": chunk.scope_id,
        "document_id": chunk.document_id,
        "chunk_index": chunk.chunk_index,
        "filename": chunk.metadata.filename,
        "page_numbers": json.dumps(chunk.metadata.page_numbers),
        "primary_page": chunk.metadata.primary_page,
        "search_text": chunk.metadata.search_text,
    }
    if chunk.metadata.language:
        metadata["language"] = chunk.metadata.language
    return metadata


def _chunk_from_record(chunk_id: str, document: str, metadata: Dict[str, Any]) -> Chunk:
    payload = dict(metadata or {})
    pages = payload.get("page_numbers") or "[]"
    payload["page_numbers"] = json.loads(pages) if isinstance(pages, str) else pages
    return Chunk(
        id=chunk_id,
        document_id=str(payload.get("document_id", "")),
        scope_id=str(payload.get("scope_id", "")),
        chunk_index=int(payload.get("chunk_index", 0)),
        content=document or "",
        metadata=ChunkMetadata.from_dict(payload),
    )


class ChromaChunkStore:
    """Persist chunks in a Chroma collection using cosine distance."""

    backend = "chroma"

    def __init__(
        self,
        persist_dir: str | Path = "chroma_db",
        *,
        collection_name: str = DEFAULT_COLLECTION_NAME,
        client: Optional[Any] = None,
    ) -> None:
        self.persist_dir = Path(persist_dir)
        self.collection_name = collection_name
        try:
            if client is None:
                self.persist_dir.mkdir(parents=True, exist_ok=True)
                client = chromadb.PersistentClient(path=str(self.persist_dir))
            self._client = client
            self._collection = client.get_or_create_collection(
                name=collection_name, metadata={"hnsw:space": "cosine"}
            )
        except Exception as exc:
            raise VectorSearchFailure("Failed to initialise Chroma collection", cause=exc) from exc
        self._write_lock = threading.Lock()

    def insert_chunk(self, chunk: Chunk) -> None:
        self.insert_chunks([chunk])

    def insert_chunks(self, chunks: Iterable[Chunk]) -> int:
        items = list(chunks)
        if not items:
            return 0
        if any(chunk.embedding is None for chunk in items):
            raise ValueError("Chroma chunks require embeddings")
        try:
            self._collection.upsert(
                ids=[chunk.id for chunk in items],
                embeddings=[list(map(float, chunk.embedding)) for chunk in items],
                documents=[chunk.content for chunk in items],
                metadatas=[_chunk_metadata(chunk) for chunk in items],
            )
        except Exception as exc:
            emit_vectorstore_event("vectorstore.insert", backend=self.backend, count=0, error=exc)
            raise VectorSearchFailure("Failed to upsert chunks into Chroma", cause=exc) from exc
        emit_vectorstore_event("vectorstore.insert", backend=self.backend, count=len(items))
        return len(items)

    def delete_document_chunks(self, document_id: str) -> int:
        try:
            existing = self._collection.get(where={"document_id": document_id}, include=[])
            ids = list(existing.get("ids") or [])
            if ids:
                self._collection.delete(ids=ids)
        except Exception as exc:
            emit_vectorstore_event(
                "vectorstore.delete", backend=self.backend, count=0, document_id=document_id, error=exc
            )
            raise VectorSearchFailure("Failed to delete chunks from Chroma", cause=exc) from exc
        emit_vectorstore_event("vectorstore.delete", backend=self.backend, count=len(ids), document_id=document_id)
        return len(ids)

    def replace_document_chunks(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        # Chroma has no transactions; writers are serialised and new ids are
        # written before stale ones are removed.
        new_ids = {chunk.id for chunk in chunks}
        with self._write_lock:
            try:
                existing = self._collection.get(where={"document_id": document_id}, include=[])
            except Exception as exc:
                raise VectorSearchFailure("Failed to list chunks in Chroma", cause=exc) from exc
            inserted = self.insert_chunks(chunks)
            stale = [chunk_id for chunk_id in existing.get("ids") or [] if chunk_id not in new_ids]
            if stale:
                try:
                    self._collection.delete(ids=stale)
                except Exception as exc:
                    raise VectorSearchFailure("Failed to delete stale chunks from Chroma", cause=exc) from exc
            return inserted

    def query_by_scope(
        self,
        scope_id: str,
        *,
        limit: Optional[int] = None,
        document_id: Optional[str] = None,
    ) -> List[Chunk]:
        where: Dict[str, Any] = {"scope_id": scope_id}
        if document_id is not None:
            where = {"$and": [{"scope_id": scope_id}, {"document_id": document_id}]}
        try:
            records = self._collection.get(where=where, include=["documents", "metadatas"])
        except Exception as exc:
            raise VectorSearchFailure("Failed to read chunks from Chroma", cause=exc) from exc

        chunks = [
            _chunk_from_record(chunk_id, document, metadata)
            for chunk_id, document, metadata in zip(
                records.get("ids") or [],
                records.get("documents") or [],
                records.get("metadatas") or [],
            )
        ]
        chunks.sort(key=lambda chunk: (chunk.document_id, chunk.chunk_index))
        if limit is not None:
            chunks = chunks[:limit]
        return chunks

    def match_chunks(
        self,
        embedding: Sequence[float],
        threshold: float,
        limit: int,
        scope_id: str,
    ) -> List[ScoredChunk]:
        if limit <= 0:
            return []
        try:
            result = self._collection.query(
                query_embeddings=[list(map(float, embedding))],
                n_results=limit,
                where={"scope_id": scope_id},
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            emit_vectorstore_event("vectorstore.match", backend=self.backend, count=0, scope_id=scope_id, error=exc)
            raise VectorSearchFailure("Chroma similarity query failed", cause=exc) from exc

        ids = (result.get("ids") or [[]])[0]
        documents = (result.get("documents") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]

        matches: List[ScoredChunk] = []
        for chunk_id, document, metadata, distance in zip(ids, documents, metadatas, distances):
            score = 1.0 - float(distance)
            if score > threshold:
                matches.append(ScoredChunk(_chunk_from_record(chunk_id, document, metadata), score))
        LOGGER.debug("Chroma matched %s of %s neighbours in scope %s", len(matches), len(ids), scope_id)
        return matches


__all__ = ["ChromaChunkStore", "DEFAULT_COLLECTION_NAME"]
