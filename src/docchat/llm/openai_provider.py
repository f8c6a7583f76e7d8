"""Streaming chat completions through the OpenAI API."""
from __future__ import annotations

import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from openai import AsyncOpenAI, OpenAIError

from docchat.errors import ProviderFailure

from .base import ChatMessage, CompletionOptions, CompletionProvider

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"
COMPLETION_TOKENS_MODELS = ("gpt-5.2", "o1", "o1-mini", "o1-preview")


def uses_completion_tokens(model: str) -> bool:
    """Reasoning models take ``max_completion_tokens`` instead of ``max_tokens``."""

    return any(model.startswith(prefix) for prefix in COMPLETION_TOKENS_MODELS)


class OpenAICompletionProvider(CompletionProvider):
    name = "openai"

    def __init__(self, *, client: Optional[Any] = None, default_model: str = DEFAULT_MODEL) -> None:
        self._client = client
        self.default_model = default_model

    @classmethod
    def is_configured(cls) -> bool:
        return bool(os.getenv("OPENAI_API_KEY"))

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = AsyncOpenAI()
        return self._client

    def build_request(
        self,
        messages: Sequence[ChatMessage],
        system_prompt: Optional[str],
        options: CompletionOptions,
    ) -> Dict[str, Any]:
        model = options.model or self.default_model
        formatted: List[Dict[str, str]] = []
        if system_prompt:
            formatted.append({"role": "system", "content": system_prompt})
        formatted.extend({"role": message.role, "content": message.content} for message in messages)

        request: Dict[str, Any] = {
            "model": model,
            "messages": formatted,
            "temperature": options.temperature,
            "stream": True,
        }
        token_param = "max_completion_tokens" if uses_completion_tokens(model) else "max_tokens"
        request[token_param] = options.max_tokens
        return request

    async def stream_completion(
        self,
        messages: Sequence[ChatMessage],
        system_prompt: Optional[str],
        options: CompletionOptions,
    ) -> AsyncIterator[str]:
        request = self.build_request(messages, system_prompt, options)
        try:
            stream = await self.client.chat.completions.create(**request)
        except OpenAIError as exc:
            raise ProviderFailure("OpenAI request failed", provider=self.name, cause=exc) from exc

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except OpenAIError as exc:
            raise ProviderFailure("OpenAI stream failed", provider=self.name, cause=exc) from exc
        finally:
            await stream.close()
            LOGGER.debug("Closed OpenAI stream for model %s", request["model"])


__all__ = ["COMPLETION_TOKENS_MODELS", "DEFAULT_MODEL", "OpenAICompletionProvider", "uses_completion_tokens"]
