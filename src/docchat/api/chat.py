"""API router streaming grounded chat answers."""
from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from docchat.answer import ChatTurn
from docchat.dependencies import get_chat_service
from docchat.errors import ProviderFailure, ProviderNotConfiguredError
from docchat.llm import configured_providers, default_provider_name
from docchat.services.chat import ChatService
from docchat.telemetry import emit_exception

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

# Characters left unescaped by JavaScript's encodeURIComponent.
_HEADER_SAFE = "-_.!~*'()"


class ChatRequest(BaseModel):
    message: str
    product_id: str
    conversation_id: Optional[str] = None
    llm_provider: Optional[str] = None
    product_name: Optional[str] = None
    custom_instructions: Optional[str] = None
    user_id: Optional[str] = None


def _turn_headers(turn: ChatTurn) -> Dict[str, str]:
    headers = {
        "Cache-Control": "no-store, max-age=0",
        "X-Conversation-Id": turn.conversation_id,
        "X-LLM-Provider": turn.provider_name,
    }
    if turn.source_metadata:
        headers["X-Source-Metadata"] = quote(json.dumps(turn.source_metadata), safe=_HEADER_SAFE)
    return headers


async def _relay(turn: ChatTurn) -> AsyncIterator[str]:
    stream = turn.stream()
    try:
        async for token in stream:
            yield token
    except ProviderFailure as exc:
        # Headers are already sent; the caller sees a truncated stream.
        emit_exception(module=__name__, error=exc, req_id=turn.id, scope_id=turn.scope_id)
    finally:
        await stream.aclose()


@router.get("/chat")
def chat_status() -> dict:
    configured = configured_providers()
    try:
        default = default_provider_name()
    except ProviderNotConfiguredError:
        default = None
    return {"status": "Chat API is running", "providers": configured, "default_provider": default}


@router.post("/chat")
async def chat(
    request: ChatRequest,
    service: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    """Stream an answer as ``text/plain``; citation data travels in headers."""

    if not request.message.strip() or not request.product_id.strip():
        raise HTTPException(status_code=400, detail="Message and product ID are required")
    try:
        turn = await service.start_turn(
            request.message,
            request.product_id,
            conversation_id=request.conversation_id,
            user_id=request.user_id,
            provider_name=request.llm_provider,
            product_name=request.product_name,
            custom_instructions=request.custom_instructions,
        )
    except ProviderNotConfiguredError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    LOGGER.info("Streaming chat turn %s via %s", turn.id, turn.provider_name)
    return StreamingResponse(
        _relay(turn),
        media_type="text/plain; charset=utf-8",
        headers=_turn_headers(turn),
    )
