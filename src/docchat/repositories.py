"""In-process document and conversation stores."""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from typing import Dict, List, Optional

from docchat.errors import DocumentBusyError, DocumentNotFoundError
from docchat.models import Conversation, Document, DocumentStatus, Message, MessageRole, utcnow

LOGGER = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20


class DocumentRepository:
    """Registry of uploaded documents and their processing status."""

    def __init__(self) -> None:
        self._documents: Dict[str, Document] = {}
        self._lock = threading.Lock()

    def add(self, document: Document) -> Document:
        with self._lock:
            self._documents[document.id] = document
        return document

    def get(self, document_id: str) -> Document:
        with self._lock:
            document = self._documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        return document

    def list_by_scope(self, scope_id: str) -> List[Document]:
        with self._lock:
            documents = [document for document in self._documents.values() if document.scope_id == scope_id]
        return sorted(documents, key=lambda document: document.created_at, reverse=True)

    def set_status(self, document_id: str, status: DocumentStatus) -> Document:
        with self._lock:
            document = self._documents.get(document_id)
            if document is None:
                raise DocumentNotFoundError(f"Document not found: {document_id}")
            updated = replace(document, status=status)
            self._documents[document_id] = updated
        LOGGER.info("Document %s status -> %s", document_id, status.value)
        return updated

    def claim_for_processing(self, document_id: str) -> Document:
        """Atomically move a document to ``processing``.

        Raises :class:`DocumentBusyError` when another job already holds it.
        """

        with self._lock:
            document = self._documents.get(document_id)
            if document is None:
                raise DocumentNotFoundError(f"Document not found: {document_id}")
            if document.status is DocumentStatus.PROCESSING:
                raise DocumentBusyError(f"Document {document_id} is already being processed")
            claimed = replace(document, status=DocumentStatus.PROCESSING)
            self._documents[document_id] = claimed
        LOGGER.info("Document %s claimed for processing (was %s)", document_id, document.status.value)
        return claimed


class MessageRepository:
    """Conversations with append-only message logs."""

    def __init__(self) -> None:
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._lock = threading.Lock()

    def create_conversation(
        self,
        scope_id: str,
        *,
        user_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Conversation:
        conversation = Conversation(id=str(uuid.uuid4()), user_id=user_id, scope_id=scope_id, title=title)
        with self._lock:
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self._lock:
            return self._conversations.get(conversation_id)

    def append_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        llm_used: Optional[str] = None,
    ) -> Message:
        message = Message(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            role=role,
            content=content,
            llm_used=llm_used,
        )
        with self._lock:
            if conversation_id not in self._conversations:
                raise KeyError(f"Conversation not found: {conversation_id}")
            self._messages[conversation_id].append(message)
        return message

    def history(self, conversation_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Message]:
        """Return the most recent *limit* messages, oldest first."""

        with self._lock:
            messages = list(self._messages.get(conversation_id, []))
        return messages[-limit:] if limit > 0 else []

    def touch_conversation(self, conversation_id: str) -> None:
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is not None:
                conversation.updated_at = utcnow()


__all__ = ["DEFAULT_HISTORY_LIMIT", "DocumentRepository", "MessageRepository"]
