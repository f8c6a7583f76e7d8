"""Runtime configuration loaded from environment variables."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

LOGGER = logging.getLogger(__name__)


def _str_from_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


@dataclass(frozen=True, slots=True)
class Settings:
    data_dir: Path
    log_dir: Path
    log_level: str
    vector_store: str
    chroma_persist_dir: Path
    chroma_collection: str
    embedding_backend: str
    embedding_model: str
    embedding_dimensions: int
    embedding_batch_size: int
    llm_provider: str | None
    llm_model: str | None
    llm_temperature: float
    llm_max_tokens: int
    chunk_size: int
    chunk_overlap: int
    retrieval_top_k: int
    retrieval_threshold: float

    @classmethod
    def from_env(cls) -> "Settings":
        llm_provider = os.getenv("LLM_PROVIDER")
        llm_model = os.getenv("LLM_MODEL")
        return cls(
            data_dir=Path(_str_from_env("DATA_DIR", "data")),
            log_dir=Path(_str_from_env("LOG_DIR", "logs")),
            log_level=_str_from_env("LOG_LEVEL", "INFO").upper(),
            vector_store=_str_from_env("VECTOR_STORE", "memory").lower(),
            chroma_persist_dir=Path(_str_from_env("CHROMA_PERSIST_DIR", "chroma_db")),
            chroma_collection=_str_from_env("CHROMA_COLLECTION", "document_chunks"),
            embedding_backend=_str_from_env("EMBEDDING_BACKEND", "openai").lower(),
            embedding_model=_str_from_env("EMBEDDING_MODEL", "text-embedding-3-large"),
            embedding_dimensions=_int_from_env("EMBEDDING_DIMENSIONS", 1536),
            embedding_batch_size=_int_from_env("EMBEDDING_BATCH_SIZE", 64),
            llm_provider=llm_provider.strip().lower() if llm_provider and llm_provider.strip() else None,
            llm_model=llm_model.strip() if llm_model and llm_model.strip() else None,
            llm_temperature=_float_from_env("LLM_TEMPERATURE", 0.7),
            llm_max_tokens=_int_from_env("LLM_MAX_TOKENS", 4096),
            chunk_size=_int_from_env("CHUNK_SIZE", 1000),
            chunk_overlap=_int_from_env("CHUNK_OVERLAP", 200),
            retrieval_top_k=_int_from_env("RETRIEVAL_TOP_K", 5),
            retrieval_threshold=_float_from_env("RETRIEVAL_THRESHOLD", 0.7),
        )


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings, reading ``.env`` once if present."""

    load_dotenv()
    return Settings.from_env()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for testing)."""

    get_settings.cache_clear()  # type: ignore[attr-defined]


__all__ = ["Settings", "get_settings", "reset_settings_cache"]
