"""Shared fixtures: isolated configuration and in-process collaborators."""
from __future__ import annotations

from typing import Iterator

import pytest

from docchat.config import reset_settings_cache
from docchat.dependencies import reset_dependencies
from docchat.embeddings import Embedder, HashEmbeddingBackend, reset_embedder_cache
from docchat.llm import register_default_providers, reset_provider_cache
from docchat.repositories import DocumentRepository, MessageRepository
from docchat.vectorstore import InMemoryChunkStore, reset_chunk_store_cache


def _reset_caches() -> None:
    reset_settings_cache()
    reset_embedder_cache()
    reset_chunk_store_cache()
    reset_dependencies()
    reset_provider_cache()


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch) -> Iterator[None]:
    monkeypatch.setenv("VECTOR_STORE", "memory")
    monkeypatch.setenv("EMBEDDING_BACKEND", "hash")
    monkeypatch.setenv("EMBEDDING_DIMENSIONS", "128")
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    _reset_caches()
    register_default_providers()
    yield
    _reset_caches()
    register_default_providers()


@pytest.fixture
def embedder() -> Embedder:
    return Embedder(HashEmbeddingBackend(128), batch_size=8)


@pytest.fixture
def chunk_store() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture
def documents() -> DocumentRepository:
    return DocumentRepository()


@pytest.fixture
def messages() -> MessageRepository:
    return MessageRepository()
