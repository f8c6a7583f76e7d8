"""Grounded, streamed answers with durable persistence of the full response."""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

from docchat.errors import ProviderFailure
from docchat.llm import ChatMessage, CompletionOptions, CompletionProvider, get_provider
from docchat.models import Message, MessageRole, RetrievalResult
from docchat.prompt_builder import PromptBundle, compose_system_prompt
from docchat.repositories import MessageRepository
from docchat.retriever import DEFAULT_THRESHOLD, Retriever
from docchat.telemetry import emit_inference_request, emit_inference_result

LOGGER = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
CANCELLED = "cancelled"


class TurnState(str, Enum):
    RECEIVED = "received"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    PERSISTED = "persisted"
    FAILED = "failed"


TERMINAL_STATES = frozenset({TurnState.PERSISTED, TurnState.FAILED})


def history_to_messages(history: Sequence[Message | ChatMessage]) -> List[ChatMessage]:
    """Drop empty messages and convert to provider messages."""

    messages: List[ChatMessage] = []
    for item in history:
        if not item.content or not item.content.strip():
            continue
        role = item.role.value if isinstance(item.role, MessageRole) else str(item.role)
        messages.append(ChatMessage(role=role, content=item.content))
    return messages


class ChatTurn:
    """One chat turn's token stream.

    Every token is handed to the caller and appended to the buffer exactly
    once. The assistant message is written only after the provider stream has
    ended normally. Provider errors and cancellation both discard the buffer.
    """

    def __init__(
        self,
        *,
        conversation_id: str,
        scope_id: str,
        provider: CompletionProvider,
        messages: List[ChatMessage],
        options: CompletionOptions,
        repository: MessageRepository,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.conversation_id = conversation_id
        self.scope_id = scope_id
        self.provider = provider
        self.messages = messages
        self.options = options
        self.repository = repository
        self.prompt: Optional[PromptBundle] = None
        self.results: List[RetrievalResult] = []
        self.state = TurnState.RECEIVED
        self.failure_reason: Optional[str] = None
        self.persisted_message: Optional[Message] = None
        self.tokens_streamed = 0
        self._consumed = False

    @property
    def provider_name(self) -> str:
        return self.provider.name

    @property
    def source_metadata(self) -> List[Dict[str, Any]]:
        return self.prompt.source_metadata if self.prompt else []

    def ground(self, results: Sequence[RetrievalResult], prompt: PromptBundle) -> None:
        self.results = list(results)
        self.prompt = prompt

    def stream(self) -> AsyncIterator[str]:
        if self._consumed:
            raise RuntimeError("A chat turn can only be streamed once")
        if self.prompt is None:
            raise RuntimeError("A chat turn must be grounded before streaming")
        self._consumed = True
        return self._generate()

    async def _generate(self) -> AsyncIterator[str]:
        self.state = TurnState.GENERATING
        started = time.perf_counter()
        buffer: List[str] = []
        error: Optional[BaseException] = None
        emit_inference_request(
            req_id=self.id,
            scope_id=self.scope_id,
            provider=self.provider_name,
            system_prompt_len=len(self.prompt.system_prompt),
            messages=len(self.messages),
            sources=[source.filename for source in self.prompt.sources],
        )
        upstream = self.provider.stream_completion(self.messages, self.prompt.system_prompt, self.options)
        completed = False
        try:
            async for token in upstream:
                buffer.append(token)
                self.tokens_streamed += 1
                yield token
            completed = True
        except ProviderFailure as exc:
            error = exc
            self._fail(str(exc))
            raise
        except Exception as exc:
            error = ProviderFailure(
                f"Provider {self.provider_name} failed while streaming", provider=self.provider_name, cause=exc
            )
            self._fail(str(error))
            raise error from exc
        finally:
            if not completed and self.state is TurnState.GENERATING:
                self._fail(CANCELLED)
                buffer.clear()
            await upstream.aclose()
            if not completed:
                self._report(started, "", error)

        self._persist("".join(buffer))
        self._report(started, "".join(buffer), None)

    def _persist(self, content: str) -> None:
        if not content.strip():
            LOGGER.warning("Provider %s returned an empty response; nothing persisted", self.provider_name)
            self._fail("empty response")
            return
        try:
            self.persisted_message = self.repository.append_message(
                self.conversation_id, MessageRole.ASSISTANT, content, llm_used=self.provider_name
            )
            self.repository.touch_conversation(self.conversation_id)
        except Exception:
            self._fail("persistence error")
            raise
        self.state = TurnState.PERSISTED

    def _fail(self, reason: str) -> None:
        if self.state in TERMINAL_STATES:
            return
        self.state = TurnState.FAILED
        self.failure_reason = reason

    def _report(self, started: float, answer: str, error: Optional[BaseException]) -> None:
        emit_inference_result(
            req_id=self.id,
            scope_id=self.scope_id,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            provider=self.provider_name,
            answer_preview=answer,
            state=self.state.value,
            tokens_streamed=self.tokens_streamed,
            persisted=self.persisted_message is not None,
            error=error,
        )


@dataclass(slots=True)
class AnswerPipelineConfig:
    top_k: int = DEFAULT_TOP_K
    threshold: float = DEFAULT_THRESHOLD
    options: CompletionOptions = CompletionOptions()


class AnswerPipeline:
    """Retrieve, compose the grounding prompt and prepare a streamed turn."""

    def __init__(
        self,
        retriever: Retriever,
        repository: MessageRepository,
        config: Optional[AnswerPipelineConfig] = None,
        *,
        provider_resolver: Callable[[Optional[str]], CompletionProvider] = get_provider,
    ) -> None:
        self.retriever = retriever
        self.repository = repository
        self.config = config or AnswerPipelineConfig()
        self.provider_resolver = provider_resolver

    async def answer(
        self,
        query: str,
        scope_id: str,
        history: Sequence[Message | ChatMessage],
        *,
        conversation_id: str,
        provider_name: Optional[str] = None,
        product_name: Optional[str] = None,
        custom_instructions: Optional[str] = None,
    ) -> ChatTurn:
        """Prepare a chat turn; tokens flow once :meth:`ChatTurn.stream` is iterated.

        Raises :class:`ProviderNotConfiguredError` before any retrieval work
        when the provider cannot be used.
        """

        provider = self.provider_resolver(provider_name)
        turn = ChatTurn(
            conversation_id=conversation_id,
            scope_id=scope_id,
            provider=provider,
            messages=history_to_messages(history),
            options=self.config.options,
            repository=self.repository,
        )

        turn.state = TurnState.RETRIEVING
        try:
            results = await self.retriever.retrieve(
                query, scope_id, limit=self.config.top_k, threshold=self.config.threshold
            )
        except Exception as error:
            LOGGER.error("Retrieval failed for scope %s; answering without documents: %s", scope_id, error)
            results = []

        turn.ground(results, compose_system_prompt(results, product_name, custom_instructions))
        return turn


__all__ = [
    "AnswerPipeline",
    "AnswerPipelineConfig",
    "ChatTurn",
    "TERMINAL_STATES",
    "TurnState",
    "history_to_messages",
]
