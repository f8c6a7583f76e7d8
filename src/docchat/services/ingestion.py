"""Document ingestion: fetch, parse, chunk, embed and commit chunks."""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

from docchat.embeddings import Embedder
from docchat.errors import EmbeddingFailure, IngestionError, ParseFailure, UnsupportedFormatError
from docchat.ingest.models import ChunkWithPageInfo
from docchat.ingest.pipeline import IngestPipeline
from docchat.logging_config import AUDIT_LOGGER_NAME
from docchat.models import Chunk, ChunkMetadata, Document, DocumentStatus
from docchat.repositories import DocumentRepository
from docchat.storage import ObjectFetcher
from docchat.telemetry import emit_exception, emit_ingest_event, traced_duration
from docchat.vectorstore import ChunkStore

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

_TYPED_FAILURES = (UnsupportedFormatError, ParseFailure, EmbeddingFailure, IngestionError)


@dataclass(slots=True)
class IngestResult:
    document_id: str
    chunks_created: int
    pages: int
    language: Optional[str]
    duration_seconds: float


def chunk_id_for(document_id: str, chunk_index: int) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{document_id}:{chunk_index}"))


class IngestionService:
    """Run one ingestion job per document.

    A job first claims the document (``processing``); a concurrent trigger for
    the same document gets :class:`DocumentBusyError`. Chunks are committed
    only once every chunk has an embedding; any failure marks the document
    ``failed`` and leaves it without chunks.
    """

    def __init__(
        self,
        documents: DocumentRepository,
        chunk_store: ChunkStore,
        embedder: Embedder,
        fetcher: ObjectFetcher,
        pipeline: Optional[IngestPipeline] = None,
    ) -> None:
        self.documents = documents
        self.chunk_store = chunk_store
        self.embedder = embedder
        self.fetcher = fetcher
        self.pipeline = pipeline or IngestPipeline()

    async def ingest_document_async(self, document_id: str) -> IngestResult:
        return await asyncio.to_thread(self.ingest_document, document_id)

    def ingest_document(self, document_id: str) -> IngestResult:
        document = self.documents.claim_for_processing(document_id)
        started = time.perf_counter()
        emit_ingest_event(
            "ingest.document.start",
            document_id=document.id,
            file_name=document.filename,
            size_bytes=document.size_bytes,
        )

        try:
            with traced_duration("ingest.fetch", logger=LOGGER, document_id=document.id):
                data = self.fetcher.fetch(document.file_url)
            prepared = self.pipeline.prepare(data, document.mime_type, document.filename)
            chunks = self._embed_chunks(document, prepared.chunks, prepared.language)
            self.chunk_store.replace_document_chunks(document.id, chunks)
            self.documents.set_status(document.id, DocumentStatus.COMPLETED)
        except _TYPED_FAILURES as error:
            self._fail(document, error, started)
            raise
        except Exception as error:
            wrapped = IngestionError(f"Ingestion failed for document {document.id}", cause=error)
            self._fail(document, wrapped, started)
            raise wrapped from error

        duration = time.perf_counter() - started
        emit_ingest_event(
            "ingest.document.complete",
            document_id=document.id,
            file_name=document.filename,
            size_bytes=len(data),
            duration_ms=duration * 1000.0,
            language=prepared.language,
            pages=prepared.parsed.total_pages,
            chunks=len(chunks),
        )
        self._audit(document, "completed", chunks=len(chunks))
        return IngestResult(
            document_id=document.id,
            chunks_created=len(chunks),
            pages=prepared.parsed.total_pages,
            language=prepared.language,
            duration_seconds=round(duration, 3),
        )

    def _embed_chunks(
        self,
        document: Document,
        pieces: List[ChunkWithPageInfo],
        language: Optional[str],
    ) -> List[Chunk]:
        vectors = self.embedder.embed_batch([piece.content for piece in pieces])
        if len(vectors) != len(pieces):
            raise EmbeddingFailure(f"Expected {len(pieces)} embeddings, received {len(vectors)}")
        return [
            Chunk(
                id=chunk_id_for(document.id, index),
                document_id=document.id,
                scope_id=document.scope_id,
                chunk_index=index,
                content=piece.content,
                metadata=ChunkMetadata(
                    filename=document.filename,
                    page_numbers=list(piece.page_numbers),
                    primary_page=piece.primary_page,
                    search_text=piece.search_text,
                    language=language,
                ),
                embedding=vector,
            )
            for index, (piece, vector) in enumerate(zip(pieces, vectors))
        ]

    def _fail(self, document: Document, error: BaseException, started: float) -> None:
        try:
            removed = self.chunk_store.delete_document_chunks(document.id)
        except Exception as cleanup_error:
            LOGGER.error("Failed to remove chunks of failed document %s: %s", document.id, cleanup_error)
        else:
            if removed:
                LOGGER.info("Removed %s chunks of failed document %s", removed, document.id)
        self.documents.set_status(document.id, DocumentStatus.FAILED)
        emit_ingest_event(
            "ingest.document.failed",
            document_id=document.id,
            file_name=document.filename,
            size_bytes=document.size_bytes,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            error=error,
        )
        emit_exception(
            module=__name__,
            error=error,
            suggestion="Retry processing" if getattr(error, "retryable", False) else None,
        )
        self._audit(document, "failed", error=f"{error.__class__.__name__}: {error}")

    def _audit(self, document: Document, status: str, **fields: object) -> None:
        AUDIT_LOGGER.info(
            {
                "event": "ingest_document",
                "document_id": document.id,
                "scope_id": document.scope_id,
                "filename": document.filename,
                "status": status,
                **fields,
            }
        )


__all__ = ["IngestResult", "IngestionService", "chunk_id_for"]
