import logging
from typing import Any, Callable, TypeVar

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from docchat.api import chat_router, documents_router
from docchat.config import get_settings
from docchat.errors import DocChatError
from docchat.llm import default_provider_name
from docchat.logging_config import configure_logging
from docchat.telemetry import emit_app_startup_event
from docchat.vectorstore import get_chunk_store

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_dir, settings.log_level)

    app = FastAPI(title="DocChat API")
    app.include_router(documents_router)
    app.include_router(chat_router)

    def _resolve_dependency(factory: Callable[[], T]) -> T:
        """Resolve a dependency while respecting FastAPI overrides."""

        override: Any | None = app.dependency_overrides.get(factory)
        resolved: Any = override if override is not None else factory
        return resolved() if callable(resolved) else resolved

    @app.on_event("startup")
    async def _startup() -> None:
        emit_app_startup_event()

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthcheck() -> str:
        """Liveness probe used by container orchestrators."""
        return "ok"

    @app.get("/readyz", response_class=PlainTextResponse)
    def readiness_probe() -> str:
        """Readiness probe that ensures the chunk store and a provider are usable."""

        errors: list[str] = []
        try:
            store = _resolve_dependency(get_chunk_store)
            store.query_by_scope("__readyz__", limit=1)
        except (DocChatError, ValueError) as exc:
            errors.append(f"chunk_store_unavailable: {exc}")

        try:
            default_provider_name()
        except DocChatError as exc:
            errors.append(f"llm_provider_unavailable: {exc}")

        if errors:
            raise HTTPException(status_code=503, detail="; ".join(errors))
        return "ok"

    return app


app = create_app()
