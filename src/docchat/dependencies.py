"""Process-wide service instances used by the HTTP layer."""
from __future__ import annotations

from functools import lru_cache

from docchat.answer import AnswerPipeline, AnswerPipelineConfig
from docchat.config import get_settings
from docchat.embeddings import get_embedder
from docchat.ingest.pipeline import IngestPipeline, IngestPipelineConfig
from docchat.llm import CompletionOptions
from docchat.repositories import DocumentRepository, MessageRepository
from docchat.retriever import Retriever
from docchat.services.chat import ChatService
from docchat.services.ingestion import IngestionService
from docchat.storage import DispatchingFetcher
from docchat.vectorstore import get_chunk_store


@lru_cache()
def get_document_repository() -> DocumentRepository:
    return DocumentRepository()


@lru_cache()
def get_message_repository() -> MessageRepository:
    return MessageRepository()


@lru_cache()
def get_retriever() -> Retriever:
    return Retriever(get_embedder(), get_chunk_store(), get_document_repository())


@lru_cache()
def get_ingestion_service() -> IngestionService:
    settings = get_settings()
    pipeline = IngestPipeline(
        IngestPipelineConfig(chunk_size=settings.chunk_size, chunk_overlap=settings.chunk_overlap)
    )
    return IngestionService(
        get_document_repository(),
        get_chunk_store(),
        get_embedder(),
        DispatchingFetcher(),
        pipeline,
    )


@lru_cache()
def get_chat_service() -> ChatService:
    settings = get_settings()
    config = AnswerPipelineConfig(
        top_k=settings.retrieval_top_k,
        threshold=settings.retrieval_threshold,
        options=CompletionOptions(
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        ),
    )
    messages = get_message_repository()
    return ChatService(AnswerPipeline(get_retriever(), messages, config), messages)


def reset_dependencies() -> None:
    """Clear every cached service instance (primarily for testing)."""

    for factory in (
        get_document_repository,
        get_message_repository,
        get_retriever,
        get_ingestion_service,
        get_chat_service,
    ):
        factory.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "get_chat_service",
    "get_document_repository",
    "get_ingestion_service",
    "get_message_repository",
    "get_retriever",
    "reset_dependencies",
]
