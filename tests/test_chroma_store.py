from __future__ import annotations

import uuid

import pytest

from docchat.models import Chunk, ChunkMetadata

chromadb = pytest.importorskip("chromadb")

from docchat.vectorstore.chroma_store import ChromaChunkStore  # noqa: E402


@pytest.fixture
def store() -> ChromaChunkStore:
    return ChromaChunkStore(client=chromadb.EphemeralClient(), collection_name=f"test-{uuid.uuid4().hex}")


def make_chunk(chunk_id: str, embedding, *, document_id: str = "doc-1", scope_id: str = "product-a", index: int = 0):
    return Chunk(
        id=chunk_id,
        document_id=document_id,
        scope_id=scope_id,
        chunk_index=index,
        content=f"content of {chunk_id}",
        metadata=ChunkMetadata(
            filename="guide.pdf",
            page_numbers=[2, 3],
            primary_page=3,
            search_text=f"content of {chunk_id}",
            language="en",
        ),
        embedding=embedding,
    )


def test_roundtrip_keeps_page_metadata(store: ChromaChunkStore) -> None:
    store.insert_chunks([make_chunk("c1", [1.0, 0.0, 0.0])])

    [chunk] = store.query_by_scope("product-a")

    assert chunk.id == "c1"
    assert chunk.content == "content of c1"
    assert chunk.metadata.page_numbers == [2, 3]
    assert chunk.metadata.primary_page == 3
    assert chunk.metadata.language == "en"


def test_match_is_scoped_and_uses_cosine_similarity(store: ChromaChunkStore) -> None:
    store.insert_chunks(
        [
            make_chunk("same", [1.0, 0.0, 0.0]),
            make_chunk("orthogonal", [0.0, 1.0, 0.0], index=1),
            make_chunk("elsewhere", [1.0, 0.0, 0.0], scope_id="product-b"),
        ]
    )

    matches = store.match_chunks([1.0, 0.0, 0.0], threshold=0.5, limit=5, scope_id="product-a")

    assert [match.chunk.id for match in matches] == ["same"]
    assert matches[0].score == pytest.approx(1.0, abs=1e-4)


def test_replace_removes_stale_chunks(store: ChromaChunkStore) -> None:
    store.insert_chunks([make_chunk("old-0", [1.0, 0.0, 0.0]), make_chunk("old-1", [0.0, 1.0, 0.0], index=1)])
    store.insert_chunk(make_chunk("other", [0.0, 0.0, 1.0], document_id="doc-2"))

    store.replace_document_chunks("doc-1", [make_chunk("new-0", [1.0, 1.0, 0.0])])

    assert [chunk.id for chunk in store.query_by_scope("product-a", document_id="doc-1")] == ["new-0"]
    assert store.delete_document_chunks("doc-2") == 1
    assert [chunk.id for chunk in store.query_by_scope("product-a")] == ["new-0"]


def test_insert_requires_embeddings(store: ChromaChunkStore) -> None:
    with pytest.raises(ValueError):
        store.insert_chunks([make_chunk("c1", None)])
