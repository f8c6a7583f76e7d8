"""Scripted completion provider for development and tests."""
from __future__ import annotations

import asyncio
from typing import AsyncIterator, List, Optional, Sequence

from docchat.errors import ProviderFailure

from .base import ChatMessage, CompletionOptions, CompletionProvider


class MockCompletionProvider(CompletionProvider):
    """Stream a fixed token script, or echo the last user message.

    ``fail_after`` raises :class:`ProviderFailure` once that many tokens have
    been emitted. ``closed`` records whether the consumer closed the stream.
    """

    name = "mock"

    def __init__(
        self,
        tokens: Optional[Sequence[str]] = None,
        *,
        fail_after: Optional[int] = None,
        delay: float = 0.0,
    ) -> None:
        self.tokens = list(tokens) if tokens is not None else None
        self.fail_after = fail_after
        self.delay = delay
        self.calls: List[tuple[List[ChatMessage], Optional[str], CompletionOptions]] = []
        self.emitted = 0
        self.closed = False

    def _script(self, messages: Sequence[ChatMessage]) -> List[str]:
        if self.tokens is not None:
            return list(self.tokens)
        question = next((message.content for message in reversed(messages) if message.role == "user"), "")
        words = f"MOCK_ANSWER: {question[:100]}".split(" ")
        return [word if index == 0 else f" {word}" for index, word in enumerate(words)]

    async def stream_completion(
        self,
        messages: Sequence[ChatMessage],
        system_prompt: Optional[str],
        options: CompletionOptions,
    ) -> AsyncIterator[str]:
        self.calls.append((list(messages), system_prompt, options))
        try:
            for token in self._script(messages):
                if self.fail_after is not None and self.emitted >= self.fail_after:
                    raise ProviderFailure("Mock provider failure", provider=self.name)
                if self.delay:
                    await asyncio.sleep(self.delay)
                self.emitted += 1
                yield token
        finally:
            self.closed = True


__all__ = ["MockCompletionProvider"]
