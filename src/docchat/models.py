"""Domain models shared by the ingestion, retrieval and chat paths."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    """Processing lifecycle of an uploaded document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class Document:
    """Reference to one uploaded file owned by a product scope."""

    id: str
    scope_id: str
    filename: str
    file_url: str
    mime_type: str
    size_bytes: int = 0
    status: DocumentStatus = DocumentStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class ChunkMetadata:
    """Provenance stored alongside each chunk."""

    filename: str
    page_numbers: List[int]
    primary_page: int
    search_text: str
    language: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "page_numbers": list(self.page_numbers),
            "primary_page": self.primary_page,
            "search_text": self.search_text,
            "language": self.language,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ChunkMetadata":
        return cls(
            filename=str(payload.get("filename", "")),
            page_numbers=[int(page) for page in payload.get("page_numbers") or []],
            primary_page=int(payload.get("primary_page") or 0),
            search_text=str(payload.get("search_text", "")),
            language=payload.get("language"),
        )


@dataclass(slots=True)
class Chunk:
    """A retrievable passage of a document."""

    id: str
    document_id: str
    scope_id: str
    chunk_index: int
    content: str
    metadata: ChunkMetadata
    embedding: Optional[List[float]] = None


@dataclass(slots=True)
class ScoredChunk:
    """Chunk paired with the similarity returned by a chunk store."""

    chunk: Chunk
    score: float


@dataclass(frozen=True, slots=True)
class SourceDocument:
    id: str
    filename: str
    file_url: str


@dataclass(frozen=True, slots=True)
class PageInfo:
    page_numbers: List[int]
    primary_page: int
    search_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page_numbers": list(self.page_numbers),
            "primary_page": self.primary_page,
            "search_text": self.search_text,
        }


@dataclass(slots=True)
class RetrievalResult:
    """A ranked passage returned by the retriever.

    ``score`` is a cosine similarity when the vector path answered and a
    keyword-overlap ratio when the keyword path did. Both lie in ``[0, 1]``
    but are not comparable with each other; one result list never mixes them.
    """

    chunk: Chunk
    score: float
    document: Optional[SourceDocument] = None
    page_info: Optional[PageInfo] = None


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(slots=True)
class Conversation:
    id: str
    user_id: Optional[str]
    scope_id: str
    title: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class Message:
    """Append-only chat message; ``llm_used`` is ``None`` for user messages."""

    id: str
    conversation_id: str
    role: MessageRole
    content: str
    llm_used: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


__all__ = [
    "Chunk",
    "ChunkMetadata",
    "Conversation",
    "Document",
    "DocumentStatus",
    "Message",
    "MessageRole",
    "PageInfo",
    "RetrievalResult",
    "ScoredChunk",
    "SourceDocument",
    "utcnow",
]
