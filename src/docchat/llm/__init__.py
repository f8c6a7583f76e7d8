"""Completion provider registry."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from docchat.config import get_settings
from docchat.errors import ProviderNotConfiguredError

from .base import ChatMessage, CompletionOptions, CompletionProvider
from .mock import MockCompletionProvider
from .openai_provider import OpenAICompletionProvider

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _ProviderEntry:
    factory: Callable[[], CompletionProvider]
    is_configured: Callable[[], bool]


# Insertion order is the default-selection priority.
_REGISTRY: Dict[str, _ProviderEntry] = {}
_INSTANCES: Dict[str, CompletionProvider] = {}
_LOCK = threading.Lock()


def register_provider(
    name: str,
    factory: Callable[[], CompletionProvider],
    *,
    is_configured: Optional[Callable[[], bool]] = None,
) -> None:
    """Register (or replace) a provider factory under *name*."""

    with _LOCK:
        _REGISTRY[name] = _ProviderEntry(factory=factory, is_configured=is_configured or (lambda: True))
        _INSTANCES.pop(name, None)


def unregister_provider(name: str) -> None:
    with _LOCK:
        _REGISTRY.pop(name, None)
        _INSTANCES.pop(name, None)


def configured_providers() -> List[str]:
    with _LOCK:
        entries = list(_REGISTRY.items())
    return [name for name, entry in entries if entry.is_configured()]


def default_provider_name() -> str:
    """``LLM_PROVIDER`` when it is usable, else the first configured provider."""

    configured = configured_providers()
    preferred = get_settings().llm_provider
    if preferred and preferred in configured:
        return preferred
    if preferred:
        LOGGER.warning("LLM_PROVIDER=%s is not configured; falling back", preferred)
    if not configured:
        raise ProviderNotConfiguredError("No LLM provider is configured")
    return configured[0]


def get_provider(name: Optional[str] = None) -> CompletionProvider:
    name = (name or default_provider_name()).strip().lower()
    with _LOCK:
        entry = _REGISTRY.get(name)
        if entry is None:
            raise ProviderNotConfiguredError(f"Unsupported LLM provider: {name}")
        if not entry.is_configured():
            raise ProviderNotConfiguredError(f"LLM provider {name} is not configured")
        provider = _INSTANCES.get(name)
        if provider is None:
            provider = entry.factory()
            _INSTANCES[name] = provider
    return provider


def reset_provider_cache() -> None:
    """Drop cached provider instances (primarily for testing)."""

    with _LOCK:
        _INSTANCES.clear()


def register_default_providers() -> None:
    register_provider(
        OpenAICompletionProvider.name,
        OpenAICompletionProvider,
        is_configured=OpenAICompletionProvider.is_configured,
    )
    register_provider(MockCompletionProvider.name, MockCompletionProvider)


register_default_providers()


__all__ = [
    "ChatMessage",
    "CompletionOptions",
    "CompletionProvider",
    "MockCompletionProvider",
    "OpenAICompletionProvider",
    "configured_providers",
    "default_provider_name",
    "get_provider",
    "register_default_providers",
    "register_provider",
    "reset_provider_cache",
    "unregister_provider",
]
