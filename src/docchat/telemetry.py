"""Structured lifecycle events for ingestion, retrieval and chat turns.

Every event is logged as a dict message (rendered by
:class:`docchat.logging_config.MinimalJSONFormatter`) with at least ``step``
and ``module`` keys. Correlation ids (``req_id``, ``scope_id`` and
``document_id``) are included only when known.
"""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
import traceback
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from docchat import __version__

LOGGER = logging.getLogger("docchat.telemetry")

STARTUP_ENV_KEYS: tuple[str, ...] = (
    "DATA_DIR",
    "VECTOR_STORE",
    "CHROMA_PERSIST_DIR",
    "CHROMA_COLLECTION",
    "EMBEDDING_BACKEND",
    "EMBEDDING_MODEL",
    "EMBEDDING_DIMENSIONS",
    "LLM_PROVIDER",
    "LLM_MODEL",
    "LLM_TEMPERATURE",
    "LLM_MAX_TOKENS",
    "CHUNK_SIZE",
    "CHUNK_OVERLAP",
    "RETRIEVAL_TOP_K",
    "RETRIEVAL_THRESHOLD",
)

PREVIEW_CHARS = 120

_CORRELATION_KEYS = ("req_id", "scope_id", "document_id")


def format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    **fields: Any,
) -> None:
    """Log one event; ``exc`` adds a formatted traceback under ``"exc"``."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    for key, value in fields.items():
        if key in _CORRELATION_KEYS and not value:
            continue
        event[key] = value
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(extra or {})

    exc_info = None
    if isinstance(exc, BaseException):
        event["exc"] = format_exception(exc)
        exc_info = (type(exc), exc, exc.__traceback__)
    elif exc is not None:
        event["exc"] = str(exc)

    getattr(logger, level.lower(), logger.info)(event, exc_info=exc_info)


def _emit(step: str, *, error: BaseException | None = None, **fields: Any) -> None:
    log_event(LOGGER, step, level="error" if error is not None else "info", exc=error, **fields)


def emit_app_startup_event() -> None:
    configured = {key: os.environ[key] for key in STARTUP_ENV_KEYS if key in os.environ}
    _emit(
        "app.startup",
        details={
            "version": __version__,
            "env": configured,
            "python": platform.python_version(),
            "platform": platform.platform(),
            "executable": sys.executable,
        },
        extra={"pid": os.getpid(), "hostname": socket.gethostname(), "cwd": str(Path.cwd())},
    )


def emit_inference_request(
    *,
    req_id: str,
    scope_id: str,
    provider: str,
    system_prompt_len: int,
    messages: int,
    sources: Iterable[str],
) -> None:
    _emit(
        "inference.request",
        req_id=req_id,
        scope_id=scope_id,
        details={
            "provider": provider,
            "system_prompt_len": system_prompt_len,
            "messages": messages,
            "sources": list(sources),
        },
    )


def emit_inference_result(
    *,
    req_id: str,
    scope_id: str,
    duration_ms: float,
    provider: str,
    answer_preview: str,
    state: str,
    tokens_streamed: int,
    persisted: bool,
    error: BaseException | None = None,
) -> None:
    """Outcome of a chat turn; ``state`` is the turn's terminal state."""

    _emit(
        "inference.result",
        error=error,
        req_id=req_id,
        scope_id=scope_id,
        duration_ms=duration_ms,
        details={
            "provider": provider,
            "state": state,
            "tokens_streamed": tokens_streamed,
            "persisted": persisted,
            "answer_preview": answer_preview[:PREVIEW_CHARS],
        },
    )


def emit_embeddings_event(
    *, model: str, count: int, duration_ms: float, errors: list[str] | None = None
) -> None:
    _emit(
        "embeddings.compute",
        duration_ms=duration_ms,
        details={
            "model": model,
            "count": count,
            "per_item_ms": round(duration_ms / count, 3) if count else None,
            "errors": errors or [],
        },
    )


def emit_vectorstore_event(
    step: str,
    *,
    backend: str,
    count: int,
    scope_id: str | None = None,
    document_id: str | None = None,
    error: BaseException | None = None,
) -> None:
    _emit(
        step,
        error=error,
        scope_id=scope_id,
        document_id=document_id,
        details={"backend": backend, "count": count},
    )


def emit_retriever_event(
    *,
    query: str,
    scope_id: str,
    limit: int,
    strategy: str,
    results: list[dict[str, Any]],
    duration_ms: float,
    vector_error: BaseException | None = None,
) -> None:
    """Record which path answered (``vector`` or ``keyword``) and the hits it returned."""

    details: dict[str, Any] = {
        "query_preview": query[:PREVIEW_CHARS],
        "limit": limit,
        "strategy": strategy,
        "results": results,
    }
    if vector_error is not None:
        details["vector_error"] = f"{type(vector_error).__name__}: {vector_error}"
    _emit("retriever.search", scope_id=scope_id, duration_ms=duration_ms, details=details)


def emit_prompt_event(
    *,
    grounded: bool,
    sources: Iterable[str],
    context_chars: int,
    system_prompt_len: int,
) -> None:
    _emit(
        "prompt.compose",
        details={
            "grounded": grounded,
            "sources": list(sources),
            "context_chars": context_chars,
            "system_prompt_len": system_prompt_len,
        },
    )


def emit_ingest_event(
    step: str,
    *,
    document_id: str,
    file_name: str | None = None,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    language: str | None = None,
    pages: int | None = None,
    chunks: int | None = None,
    error: BaseException | None = None,
) -> None:
    details = {
        "file": file_name,
        "size_bytes": size_bytes,
        "language": language,
        "pages": pages,
        "chunks": chunks,
    }
    _emit(
        step,
        error=error,
        document_id=document_id,
        duration_ms=duration_ms,
        details={key: value for key, value in details.items() if value is not None},
    )


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    scope_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module, "error_type": type(error).__name__}
    if suggestion:
        details["suggestion"] = suggestion
    _emit("exception", error=error, req_id=req_id, scope_id=scope_id, details=details)


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    """Log ``<step>.start`` then either ``<step>.complete`` or ``<step>.failed``."""

    logger = logger or LOGGER
    started = time.perf_counter()
    log_event(logger, f"{step}.start", details=fields)
    try:
        yield
    except Exception as error:
        log_event(
            logger,
            f"{step}.failed",
            level="error",
            duration_ms=(time.perf_counter() - started) * 1000.0,
            details=fields,
            exc=error,
        )
        raise
    log_event(logger, f"{step}.complete", duration_ms=(time.perf_counter() - started) * 1000.0, details=fields)


__all__ = [
    "emit_app_startup_event",
    "emit_embeddings_event",
    "emit_exception",
    "emit_inference_request",
    "emit_inference_result",
    "emit_ingest_event",
    "emit_prompt_event",
    "emit_retriever_event",
    "emit_vectorstore_event",
    "format_exception",
    "log_event",
    "traced_duration",
]
