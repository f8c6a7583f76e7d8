from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from docchat.errors import DocumentBusyError, DocumentNotFoundError
from docchat.models import Document, DocumentStatus, MessageRole


def make_document(document_id: str, scope_id: str = "product-a", **kwargs) -> Document:
    return Document(
        id=document_id,
        scope_id=scope_id,
        filename=f"{document_id}.pdf",
        file_url=f"/data/{document_id}.pdf",
        mime_type="application/pdf",
        **kwargs,
    )


def test_documents_are_listed_per_scope_newest_first(documents) -> None:
    older = make_document("older")
    newer = make_document("newer", created_at=older.created_at + timedelta(seconds=5))
    documents.add(older)
    documents.add(newer)
    documents.add(make_document("elsewhere", scope_id="product-b"))

    assert [document.id for document in documents.list_by_scope("product-a")] == ["newer", "older"]
    assert documents.list_by_scope("product-c") == []


def test_unknown_documents_raise(documents) -> None:
    with pytest.raises(DocumentNotFoundError):
        documents.get("missing")
    with pytest.raises(DocumentNotFoundError):
        documents.set_status("missing", DocumentStatus.FAILED)
    with pytest.raises(DocumentNotFoundError):
        documents.claim_for_processing("missing")


def test_claim_moves_to_processing_once(documents) -> None:
    documents.add(make_document("doc"))

    claimed = documents.claim_for_processing("doc")

    assert claimed.status is DocumentStatus.PROCESSING
    with pytest.raises(DocumentBusyError):
        documents.claim_for_processing("doc")

    documents.set_status("doc", DocumentStatus.FAILED)
    assert documents.claim_for_processing("doc").status is DocumentStatus.PROCESSING


def test_concurrent_claims_have_one_winner(documents) -> None:
    documents.add(make_document("doc"))
    outcomes = []
    barrier = threading.Barrier(8)

    def attempt() -> None:
        barrier.wait()
        try:
            documents.claim_for_processing("doc")
            outcomes.append("claimed")
        except DocumentBusyError:
            outcomes.append("busy")

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("claimed") == 1
    assert outcomes.count("busy") == 7


def test_messages_are_appended_in_order(messages) -> None:
    conversation = messages.create_conversation("product-a", user_id="agent", title="Router")
    messages.append_message(conversation.id, MessageRole.USER, "question")
    answer = messages.append_message(conversation.id, MessageRole.ASSISTANT, "answer", llm_used="mock")

    history = messages.history(conversation.id)

    assert [message.content for message in history] == ["question", "answer"]
    assert history[0].llm_used is None
    assert answer.llm_used == "mock"
    assert messages.history(conversation.id, limit=1) == [answer]
    assert messages.history(conversation.id, limit=0) == []


def test_appending_to_unknown_conversation_fails(messages) -> None:
    with pytest.raises(KeyError):
        messages.append_message("missing", MessageRole.USER, "hi")
    assert messages.get_conversation("missing") is None


def test_touch_updates_timestamp(messages) -> None:
    conversation = messages.create_conversation("product-a")
    before = conversation.updated_at

    messages.touch_conversation(conversation.id)

    assert messages.get_conversation(conversation.id).updated_at >= before
