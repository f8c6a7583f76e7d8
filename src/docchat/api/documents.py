"""API router for document upload, processing and chunk inspection."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from docchat.config import get_settings
from docchat.dependencies import get_document_repository, get_ingestion_service, get_retriever
from docchat.errors import DocChatError, DocumentBusyError, DocumentNotFoundError, UnsupportedFormatError
from docchat.ingest.format_detection import DocumentFormatDetector
from docchat.models import Document
from docchat.repositories import DocumentRepository
from docchat.retriever import Retriever
from docchat.services.ingestion import IngestionService
from docchat.storage import save_upload

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["documents"])


class DocumentResponse(BaseModel):
    id: str
    scope_id: str
    filename: str
    file_url: str
    mime_type: str
    size_bytes: int
    status: str
    created_at: datetime


class ProcessResponse(BaseModel):
    success: bool
    chunks_created: int
    pages: int
    language: Optional[str] = None
    duration_seconds: float


class ChunkResponse(BaseModel):
    id: str
    chunk_index: int
    content: str
    metadata: Dict[str, Any]


def _serialize_document(document: Document) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        scope_id=document.scope_id,
        filename=document.filename,
        file_url=document.file_url,
        mime_type=document.mime_type,
        size_bytes=document.size_bytes,
        status=document.status.value,
        created_at=document.created_at,
    )


@router.post("/products/{scope_id}/documents", response_model=DocumentResponse, status_code=201)
async def upload_document(
    scope_id: str,
    file: UploadFile = File(...),
    documents: DocumentRepository = Depends(get_document_repository),
) -> DocumentResponse:
    """Store an uploaded file and register it as a ``pending`` document."""

    if not file.filename:
        raise HTTPException(status_code=400, detail="A file name is required")
    path = await save_upload(scope_id, file, get_settings().data_dir)
    document = Document(
        id=str(uuid.uuid4()),
        scope_id=scope_id,
        filename=file.filename,
        file_url=str(path),
        mime_type=DocumentFormatDetector.guess_mime(file.filename, file.content_type),
        size_bytes=path.stat().st_size,
    )
    documents.add(document)
    LOGGER.info("Registered document %s (%s) for product %s", document.id, document.mime_type, scope_id)
    return _serialize_document(document)


@router.get("/products/{scope_id}/documents", response_model=List[DocumentResponse])
def list_documents(
    scope_id: str,
    documents: DocumentRepository = Depends(get_document_repository),
) -> List[DocumentResponse]:
    return [_serialize_document(document) for document in documents.list_by_scope(scope_id)]


@router.post("/documents/{document_id}/process", response_model=ProcessResponse)
async def process_document(
    document_id: str,
    service: IngestionService = Depends(get_ingestion_service),
) -> ProcessResponse:
    """Run ingestion for one document and report how many chunks were created."""

    try:
        result = await service.ingest_document_async(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except DocumentBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except UnsupportedFormatError as exc:
        raise HTTPException(status_code=415, detail=str(exc)) from exc
    except DocChatError as exc:
        raise HTTPException(status_code=500, detail=f"Document processing failed: {exc}") from exc

    return ProcessResponse(
        success=True,
        chunks_created=result.chunks_created,
        pages=result.pages,
        language=result.language,
        duration_seconds=result.duration_seconds,
    )


@router.get("/documents/{document_id}/chunks", response_model=List[ChunkResponse])
def list_chunks(
    document_id: str,
    retriever: Retriever = Depends(get_retriever),
) -> List[ChunkResponse]:
    try:
        chunks = retriever.chunks_for_document(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [
        ChunkResponse(
            id=chunk.id,
            chunk_index=chunk.chunk_index,
            content=chunk.content,
            metadata=chunk.metadata.to_dict(),
        )
        for chunk in chunks
    ]
