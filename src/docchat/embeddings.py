"""Embedding helpers backed by OpenAI, Sentence Transformers or a local hash."""
from __future__ import annotations

import hashlib
import logging
import math
import re
import time
from functools import lru_cache
from typing import Any, List, Optional, Protocol, Sequence

from openai import OpenAI

from docchat.config import get_settings
from docchat.errors import EmbeddingFailure
from docchat.telemetry import emit_embeddings_event

LOGGER = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "text-embedding-3-large"
DEFAULT_LOCAL_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_DIMENSIONS = 1536

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class EmbeddingBackend(Protocol):
    model_name: str

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class OpenAIEmbeddingBackend:
    """Calls the OpenAI embeddings endpoint with a fixed model and dimension."""

    def __init__(
        self,
        model_name: str = DEFAULT_OPENAI_MODEL,
        dimensions: int = DEFAULT_DIMENSIONS,
        *,
        client: Optional[Any] = None,
    ) -> None:
        self.model_name = model_name
        self.dimensions = dimensions
        self._client = client

    @property
    def client(self) -> Any:
        # Created lazily so the service can start without credentials.
        if self._client is None:
            self._client = OpenAI()
        return self._client

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        response = self.client.embeddings.create(
            model=self.model_name,
            input=list(texts),
            dimensions=self.dimensions,
        )
        items = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in items]


class SentenceTransformerBackend:
    """Local embeddings through ``sentence-transformers`` (``local`` extra)."""

    def __init__(self, model_name: str = DEFAULT_LOCAL_MODEL, *, device: str | None = None) -> None:
        try:
            from sentence_transformers import SentenceTransformer  # type: ignore import-not-found
        except ImportError as error:
            raise EmbeddingFailure(
                "EMBEDDING_BACKEND=sentence-transformers requires the 'sentence-transformers' package",
                cause=error,
            ) from error
        self.model_name = model_name
        self._model = SentenceTransformer(model_name, device=device)

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        embeddings = self._model.encode(
            list(texts),
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=False,
        )
        return embeddings.tolist()


class HashEmbeddingBackend:
    """Deterministic bag-of-words vectors for offline development and tests.

    Each lowercase token is hashed onto one signed dimension, so texts sharing
    vocabulary get a positive cosine similarity.
    """

    def __init__(self, dimensions: int = 256) -> None:
        self.model_name = f"hash-{dimensions}"
        self.dimensions = dimensions

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        return [self._embed(text) for text in texts]

    def _embed(self, text: str) -> List[float]:
        vector = [0.0] * self.dimensions
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimensions
            vector[bucket] += 1.0 if digest[4] & 1 else -1.0
        norm = math.sqrt(sum(value * value for value in vector))
        if norm:
            vector = [value / norm for value in vector]
        return vector


class Embedder:
    """Single and batched embedding with uniform error handling and telemetry."""

    def __init__(self, backend: EmbeddingBackend, *, batch_size: int = 64) -> None:
        self.backend = backend
        self.batch_size = max(batch_size, 1)

    @property
    def model_name(self) -> str:
        return self.backend.model_name

    def embed(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        started = time.perf_counter()
        embeddings: List[List[float]] = []
        try:
            for offset in range(0, len(texts), self.batch_size):
                batch = list(texts[offset : offset + self.batch_size])
                vectors = self.backend.embed_texts(batch)
                if len(vectors) != len(batch):
                    raise EmbeddingFailure(
                        f"Embedding backend returned {len(vectors)} vectors for {len(batch)} inputs"
                    )
                if any(not vector for vector in vectors):
                    raise EmbeddingFailure("Embedding backend returned an empty vector")
                embeddings.extend(vectors)
        except EmbeddingFailure as error:
            self._emit(len(texts), started, error)
            raise
        except Exception as error:
            self._emit(len(texts), started, error)
            LOGGER.error("Embedding generation failed: %s", error)
            raise EmbeddingFailure("Failed to generate embeddings", cause=error) from error

        self._emit(len(texts), started)
        return embeddings

    def _emit(self, count: int, started: float, error: BaseException | None = None) -> None:
        emit_embeddings_event(
            model=self.model_name,
            count=count,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            errors=[str(error)] if error is not None else None,
        )


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError("Vectors must have the same length")
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def build_backend(name: str, *, model_name: str, dimensions: int) -> EmbeddingBackend:
    if name == "openai":
        return OpenAIEmbeddingBackend(model_name, dimensions)
    if name == "sentence-transformers":
        if model_name == DEFAULT_OPENAI_MODEL:
            model_name = DEFAULT_LOCAL_MODEL
        return SentenceTransformerBackend(model_name)
    if name == "hash":
        return HashEmbeddingBackend(dimensions)
    raise ValueError(f"Unsupported EMBEDDING_BACKEND: {name!r}")


@lru_cache()
def get_embedder() -> Embedder:
    """Return a cached embedder configured from the environment."""

    settings = get_settings()
    backend = build_backend(
        settings.embedding_backend,
        model_name=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
    )
    LOGGER.info("Embedding backend %s (%s)", settings.embedding_backend, backend.model_name)
    return Embedder(backend, batch_size=settings.embedding_batch_size)


def reset_embedder_cache() -> None:
    """Clear the cached embedder (primarily for testing)."""

    get_embedder.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "Embedder",
    "EmbeddingBackend",
    "HashEmbeddingBackend",
    "OpenAIEmbeddingBackend",
    "SentenceTransformerBackend",
    "build_backend",
    "cosine_similarity",
    "get_embedder",
    "reset_embedder_cache",
]
