"""Exception taxonomy shared by the ingestion and chat pipelines."""
from __future__ import annotations


class DocChatError(RuntimeError):
    """Base class for all errors raised by docchat."""

    retryable = False

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        self.__cause__ = cause


class UnsupportedFormatError(DocChatError):
    """Raised when a document's MIME type cannot be parsed."""

    def __init__(self, mime_type: str | None, *, cause: BaseException | None = None) -> None:
        super().__init__(f"Unsupported file type: {mime_type}", cause=cause)
        self.mime_type = mime_type


class ParseFailure(DocChatError):
    """Raised when text extraction fails for a supported format."""

    retryable = True


class EmbeddingFailure(DocChatError):
    """Raised when the embedding backend cannot produce vectors."""

    retryable = True


class VectorSearchFailure(DocChatError):
    """Raised by chunk stores when a similarity search cannot be executed."""

    retryable = True


class ProviderFailure(DocChatError):
    """Raised when a completion provider fails while streaming."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.provider = provider


class ProviderNotConfiguredError(DocChatError):
    """Raised when a completion provider is unknown or lacks credentials."""


class IngestionError(DocChatError):
    """Raised when document ingestion fails for a reason outside the parser/embedder."""

    retryable = True


class DocumentNotFoundError(DocChatError):
    """Raised when a document id is not registered."""


class DocumentBusyError(DocChatError):
    """Raised when a document is already being processed by another job."""


__all__ = [
    "DocChatError",
    "DocumentBusyError",
    "DocumentNotFoundError",
    "EmbeddingFailure",
    "IngestionError",
    "ParseFailure",
    "ProviderFailure",
    "ProviderNotConfiguredError",
    "UnsupportedFormatError",
    "VectorSearchFailure",
]
