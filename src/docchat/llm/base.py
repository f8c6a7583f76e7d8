"""Contract shared by streaming completion providers."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence

__all__ = ["ChatMessage", "CompletionOptions", "CompletionProvider"]


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: str
    content: str


@dataclass(frozen=True, slots=True)
class CompletionOptions:
    model: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 4096


class CompletionProvider(ABC):
    """A language-model backend that streams text deltas."""

    name: str = "base"

    @classmethod
    def is_configured(cls) -> bool:
        """Return whether the backend has the credentials it needs."""

        return True

    @abstractmethod
    def stream_completion(
        self,
        messages: Sequence[ChatMessage],
        system_prompt: Optional[str],
        options: CompletionOptions,
    ) -> AsyncIterator[str]:
        """Yield text deltas in order.

        Implementations are async generators, so ``aclose()`` on the returned
        iterator stops upstream generation.
        """
