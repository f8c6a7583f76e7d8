from __future__ import annotations

from typing import List, Optional

import pytest

from docchat.errors import VectorSearchFailure
from docchat.models import Chunk, ChunkMetadata
from docchat.vectorstore import InMemoryChunkStore, get_chunk_store


def make_chunk(
    chunk_id: str,
    *,
    document_id: str = "doc-1",
    scope_id: str = "product-a",
    chunk_index: int = 0,
    embedding: Optional[List[float]] = None,
    content: str = "text",
) -> Chunk:
    return Chunk(
        id=chunk_id,
        document_id=document_id,
        scope_id=scope_id,
        chunk_index=chunk_index,
        content=content,
        metadata=ChunkMetadata(filename="manual.pdf", page_numbers=[1], primary_page=1, search_text=content),
        embedding=embedding if embedding is not None else [1.0, 0.0],
    )


def test_match_is_scoped_ranked_and_thresholded() -> None:
    store = InMemoryChunkStore()
    store.insert_chunks(
        [
            make_chunk("close", embedding=[1.0, 0.1]),
            make_chunk("exact", embedding=[1.0, 0.0]),
            make_chunk("far", embedding=[0.0, 1.0]),
            make_chunk("other-scope", scope_id="product-b", embedding=[1.0, 0.0]),
        ]
    )

    matches = store.match_chunks([1.0, 0.0], threshold=0.5, limit=5, scope_id="product-a")

    assert [match.chunk.id for match in matches] == ["exact", "close"]
    assert matches[0].score == pytest.approx(1.0)


def test_match_threshold_is_strict_and_limit_applies() -> None:
    store = InMemoryChunkStore()
    store.insert_chunks([make_chunk(f"c{index}", chunk_index=index) for index in range(4)])

    assert store.match_chunks([1.0, 0.0], threshold=1.0, limit=5, scope_id="product-a") == []
    assert len(store.match_chunks([1.0, 0.0], threshold=0.0, limit=2, scope_id="product-a")) == 2
    assert store.match_chunks([1.0, 0.0], threshold=0.0, limit=0, scope_id="product-a") == []


def test_dimension_mismatch_raises_vector_search_failure() -> None:
    store = InMemoryChunkStore()
    store.insert_chunk(make_chunk("c1", embedding=[1.0, 0.0, 0.0]))

    with pytest.raises(VectorSearchFailure):
        store.match_chunks([1.0, 0.0], threshold=0.0, limit=3, scope_id="product-a")


def test_query_by_scope_orders_and_filters() -> None:
    store = InMemoryChunkStore()
    store.insert_chunks(
        [
            make_chunk("b1", document_id="doc-b", chunk_index=1),
            make_chunk("a1", document_id="doc-a", chunk_index=1),
            make_chunk("a0", document_id="doc-a", chunk_index=0),
            make_chunk("x0", scope_id="product-b"),
        ]
    )

    assert [chunk.id for chunk in store.query_by_scope("product-a")] == ["a0", "a1", "b1"]
    assert [chunk.id for chunk in store.query_by_scope("product-a", limit=2)] == ["a0", "a1"]
    assert [chunk.id for chunk in store.query_by_scope("product-a", document_id="doc-b")] == ["b1"]


def test_replace_and_delete_document_chunks() -> None:
    store = InMemoryChunkStore()
    store.insert_chunks([make_chunk("old-0"), make_chunk("old-1", chunk_index=1), make_chunk("keep", document_id="doc-2")])

    inserted = store.replace_document_chunks("doc-1", [make_chunk("new-0")])

    assert inserted == 1
    assert sorted(chunk.id for chunk in store.query_by_scope("product-a")) == ["keep", "new-0"]
    assert store.delete_document_chunks("doc-1") == 1
    assert store.delete_document_chunks("doc-1") == 0
    assert len(store) == 1


def test_chunks_without_embeddings_are_not_matched() -> None:
    store = InMemoryChunkStore()
    chunk = make_chunk("plain")
    chunk.embedding = None
    store.insert_chunk(chunk)

    assert store.match_chunks([1.0, 0.0], threshold=0.0, limit=3, scope_id="product-a") == []
    assert [item.id for item in store.query_by_scope("product-a")] == ["plain"]


def test_get_chunk_store_uses_configured_backend() -> None:
    assert isinstance(get_chunk_store(), InMemoryChunkStore)
    assert get_chunk_store() is get_chunk_store()
