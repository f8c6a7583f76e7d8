"""Chat turns: conversation bookkeeping around the answer pipeline."""
from __future__ import annotations

import logging
from typing import Optional

from docchat.answer import AnswerPipeline, ChatTurn
from docchat.models import Conversation, MessageRole
from docchat.repositories import DEFAULT_HISTORY_LIMIT, MessageRepository

LOGGER = logging.getLogger(__name__)

TITLE_CHARS = 50


class ChatService:
    def __init__(
        self,
        pipeline: AnswerPipeline,
        messages: MessageRepository,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.pipeline = pipeline
        self.messages = messages
        self.history_limit = history_limit

    def resolve_conversation(
        self,
        scope_id: str,
        message: str,
        *,
        conversation_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Conversation:
        """Reuse a conversation of the same product, otherwise start a new one."""

        if conversation_id:
            conversation = self.messages.get_conversation(conversation_id)
            if conversation is not None and conversation.scope_id == scope_id:
                return conversation
            LOGGER.info("Conversation %s does not match product %s; starting a new one", conversation_id, scope_id)
        return self.messages.create_conversation(scope_id, user_id=user_id, title=message[:TITLE_CHARS])

    async def start_turn(
        self,
        message: str,
        scope_id: str,
        *,
        conversation_id: Optional[str] = None,
        user_id: Optional[str] = None,
        provider_name: Optional[str] = None,
        product_name: Optional[str] = None,
        custom_instructions: Optional[str] = None,
    ) -> ChatTurn:
        """Record the user message and prepare the streamed answer.

        Raises :class:`ValueError` for an empty message and
        :class:`ProviderNotConfiguredError` before anything is recorded when
        the provider cannot be used.
        """

        if not message or not message.strip():
            raise ValueError("Message must not be empty")
        self.pipeline.provider_resolver(provider_name)

        conversation = self.resolve_conversation(
            scope_id, message, conversation_id=conversation_id, user_id=user_id
        )
        self.messages.append_message(conversation.id, MessageRole.USER, message)
        history = self.messages.history(conversation.id, limit=self.history_limit)
        return await self.pipeline.answer(
            message,
            scope_id,
            history,
            conversation_id=conversation.id,
            provider_name=provider_name,
            product_name=product_name,
            custom_instructions=custom_instructions,
        )


__all__ = ["ChatService", "TITLE_CHARS"]
