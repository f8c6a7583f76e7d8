from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest

from docchat.embeddings import Embedder, HashEmbeddingBackend
from docchat.errors import (
    DocumentBusyError,
    DocumentNotFoundError,
    EmbeddingFailure,
    IngestionError,
    UnsupportedFormatError,
)
from docchat.ingest.pipeline import IngestPipeline, IngestPipelineConfig
from docchat.logging_config import AUDIT_LOGGER_NAME
from docchat.models import Document, DocumentStatus
from docchat.services.ingestion import IngestionService, chunk_id_for
from docchat.storage import DispatchingFetcher

from pdf_factory import make_pdf

MANUAL = (
    "The router must be placed in a well ventilated area away from direct sunlight.\n\n"
    "To reset the router, hold the reset button on the back panel for ten seconds until "
    "the status light blinks orange.\n\n"
    "Firmware updates are downloaded automatically every night and installed when the "
    "device is idle.\n\n"
    "The warranty covers manufacturing defects for two years from the date of purchase."
)


class SwitchableBackend(HashEmbeddingBackend):
    def __init__(self) -> None:
        super().__init__(64)
        self.fail = False

    def embed_texts(self, texts):
        if self.fail:
            raise TimeoutError("embedding service timed out")
        return super().embed_texts(texts)


def register(documents, path: Path, *, mime_type: str = "text/plain", document_id: str = "doc-1") -> Document:
    return documents.add(
        Document(
            id=document_id,
            scope_id="product-a",
            filename=path.name,
            file_url=str(path),
            mime_type=mime_type,
            size_bytes=path.stat().st_size if path.exists() else 0,
        )
    )


def build_service(documents, chunk_store, embedder, fetcher=None) -> IngestionService:
    return IngestionService(
        documents,
        chunk_store,
        embedder,
        fetcher or DispatchingFetcher(),
        IngestPipeline(IngestPipelineConfig(chunk_size=160, chunk_overlap=20)),
    )


def test_ingest_text_document(tmp_path, documents, chunk_store, embedder) -> None:
    path = tmp_path / "manual.txt"
    path.write_text(MANUAL, encoding="utf-8")
    register(documents, path)
    service = build_service(documents, chunk_store, embedder)

    result = service.ingest_document("doc-1")

    chunks = chunk_store.query_by_scope("product-a", document_id="doc-1")
    assert result.chunks_created == len(chunks) > 1
    assert result.pages == 1
    assert result.language == "en"
    assert documents.get("doc-1").status is DocumentStatus.COMPLETED
    assert [chunk.chunk_index for chunk in chunks] == list(range(len(chunks)))
    assert [chunk.id for chunk in chunks] == [chunk_id_for("doc-1", index) for index in range(len(chunks))]
    assert all(chunk.embedding and len(chunk.embedding) == 128 for chunk in chunks)
    assert all(chunk.metadata.filename == "manual.txt" for chunk in chunks)
    assert all(chunk.metadata.language == "en" for chunk in chunks)


def test_ingest_pdf_keeps_page_attribution(tmp_path, documents, chunk_store, embedder) -> None:
    path = tmp_path / "guide.pdf"
    path.write_bytes(
        make_pdf(
            [
                ["Chapter one explains how to unpack the device and check the box contents."],
                ["Chapter two explains how to connect the device to the wireless network."],
                ["Chapter three explains how to read the diagnostic lights on the front."],
            ]
        )
    )
    register(documents, path, mime_type="application/pdf")

    result = build_service(documents, chunk_store, embedder).ingest_document("doc-1")

    chunks = chunk_store.query_by_scope("product-a", document_id="doc-1")
    assert result.pages == 3
    pages = sorted({page for chunk in chunks for page in chunk.metadata.page_numbers})
    assert pages == [1, 2, 3]
    for chunk in chunks:
        assert chunk.metadata.primary_page in chunk.metadata.page_numbers


def test_unsupported_format_marks_document_failed(tmp_path, documents, chunk_store, embedder) -> None:
    path = tmp_path / "diagram.png"
    path.write_bytes(b"\x89PNG\r\n")
    register(documents, path, mime_type="image/png")

    with pytest.raises(UnsupportedFormatError):
        build_service(documents, chunk_store, embedder).ingest_document("doc-1")

    assert documents.get("doc-1").status is DocumentStatus.FAILED
    assert chunk_store.query_by_scope("product-a") == []


def test_embedding_failure_removes_previous_chunks(tmp_path, documents, chunk_store) -> None:
    path = tmp_path / "manual.txt"
    path.write_text(MANUAL, encoding="utf-8")
    register(documents, path)
    backend = SwitchableBackend()
    service = build_service(documents, chunk_store, Embedder(backend))
    service.ingest_document("doc-1")
    assert chunk_store.query_by_scope("product-a")

    backend.fail = True
    with pytest.raises(EmbeddingFailure) as excinfo:
        service.ingest_document("doc-1")

    assert isinstance(excinfo.value.cause, TimeoutError)
    assert documents.get("doc-1").status is DocumentStatus.FAILED
    assert chunk_store.query_by_scope("product-a") == []


def test_missing_file_is_an_ingestion_error(tmp_path, documents, chunk_store, embedder) -> None:
    register(documents, tmp_path / "gone.txt")

    with pytest.raises(IngestionError):
        build_service(documents, chunk_store, embedder).ingest_document("doc-1")

    assert documents.get("doc-1").status is DocumentStatus.FAILED


def test_unexpected_errors_are_wrapped(tmp_path, documents, chunk_store, embedder) -> None:
    class ExplodingFetcher:
        def fetch(self, location: str) -> bytes:
            raise RuntimeError("disk on fire")

    register(documents, tmp_path / "manual.txt")

    with pytest.raises(IngestionError) as excinfo:
        build_service(documents, chunk_store, embedder, ExplodingFetcher()).ingest_document("doc-1")

    assert isinstance(excinfo.value.cause, RuntimeError)
    assert documents.get("doc-1").status is DocumentStatus.FAILED


def test_reprocessing_replaces_the_chunk_set(tmp_path, documents, chunk_store, embedder) -> None:
    path = tmp_path / "manual.txt"
    path.write_text(MANUAL, encoding="utf-8")
    register(documents, path)
    service = build_service(documents, chunk_store, embedder)
    first = service.ingest_document("doc-1")

    path.write_text("The warranty covers two years.", encoding="utf-8")
    second = service.ingest_document("doc-1")

    chunks = chunk_store.query_by_scope("product-a", document_id="doc-1")
    assert first.chunks_created > second.chunks_created == 1
    assert [chunk.content for chunk in chunks] == ["The warranty covers two years."]


def test_concurrent_trigger_is_rejected_while_processing(tmp_path, documents, chunk_store, embedder) -> None:
    path = tmp_path / "manual.txt"
    path.write_text(MANUAL, encoding="utf-8")
    register(documents, path)
    documents.claim_for_processing("doc-1")

    with pytest.raises(DocumentBusyError):
        build_service(documents, chunk_store, embedder).ingest_document("doc-1")

    assert documents.get("doc-1").status is DocumentStatus.PROCESSING
    assert chunk_store.query_by_scope("product-a") == []


def test_unknown_document(documents, chunk_store, embedder) -> None:
    with pytest.raises(DocumentNotFoundError):
        build_service(documents, chunk_store, embedder).ingest_document("nope")


def test_documents_ingest_concurrently(tmp_path, documents, chunk_store, embedder) -> None:
    for index in range(3):
        path = tmp_path / f"manual-{index}.txt"
        path.write_text(MANUAL, encoding="utf-8")
        register(documents, path, document_id=f"doc-{index}")
    service = build_service(documents, chunk_store, embedder)

    async def runner():
        return await asyncio.gather(*(service.ingest_document_async(f"doc-{index}") for index in range(3)))

    results = asyncio.run(runner())

    assert {result.document_id for result in results} == {"doc-0", "doc-1", "doc-2"}
    assert all(documents.get(f"doc-{index}").status is DocumentStatus.COMPLETED for index in range(3))
    assert len(chunk_store) == sum(result.chunks_created for result in results)


def test_audit_records_outcomes(tmp_path, documents, chunk_store, embedder) -> None:
    records = []

    class ListHandler(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record.msg)

    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    handler = ListHandler()
    audit_logger.addHandler(handler)
    previous_level = audit_logger.level
    audit_logger.setLevel(logging.INFO)
    try:
        path = tmp_path / "manual.txt"
        path.write_text(MANUAL, encoding="utf-8")
        register(documents, path)
        register(documents, tmp_path / "missing.txt", document_id="doc-2")
        service = build_service(documents, chunk_store, embedder)
        service.ingest_document("doc-1")
        with pytest.raises(IngestionError):
            service.ingest_document("doc-2")
    finally:
        audit_logger.removeHandler(handler)
        audit_logger.setLevel(previous_level)

    assert [(record["document_id"], record["status"]) for record in records] == [
        ("doc-1", "completed"),
        ("doc-2", "failed"),
    ]
    assert records[0]["chunks"] > 0
    assert records[1]["error"].startswith("IngestionError")
