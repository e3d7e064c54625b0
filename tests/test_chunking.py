from unittest.mock import AsyncMock

import pytest

from rag_chat.src.document_ingestion.chunking import DocumentChunker, DocumentChunkStore


def test_chunker_blank_text_gives_no_chunks():
    chunker = DocumentChunker()

    assert chunker.chunk("") == []
    assert chunker.chunk("   \n\n  ") == []


def test_chunker_respects_chunk_size():
    chunker = DocumentChunker(chunk_size=100, chunk_overlap=10)
    text = "\n\n".join(f"Paragraph {i}. " + "word " * 30 for i in range(5))

    chunks = chunker.chunk(text)

    assert len(chunks) > 1
    assert all(len(c) <= 100 for c in chunks)


@pytest.mark.asyncio
async def test_store_document_chunks_builds_records(embeddings):
    index = AsyncMock()
    index.upsert.return_value = 0
    store = DocumentChunkStore(DocumentChunker(chunk_size=50, chunk_overlap=0), embeddings, index)
    text = "alpha beta gamma delta. " * 10

    stored = await store.store_document_chunks(
        text,
        "file1",
        "user_123",
        metadata={"file_name": "a.txt", "file_id": "spoofed", "nested": {"x": 1}},
    )

    namespace, records = index.upsert.await_args.args
    assert namespace == "user-user_123"
    assert stored.namespace == "user-user_123"
    assert stored.chunks_count == len(records) > 1
    assert [r.id for r in records] == [f"file1-chunk-{i}" for i in range(len(records))]

    first = records[0].metadata
    assert first["file_id"] == "file1"
    assert first["user_id"] == "user_123"
    assert first["chunk_index"] == 0
    assert first["total_chunks"] == len(records)
    assert first["file_name"] == "a.txt"
    assert "nested" not in first
    assert first["text"] in text
    assert len(records[0].vector) == 32


@pytest.mark.asyncio
async def test_store_document_chunks_with_empty_text_skips_index(embeddings):
    index = AsyncMock()
    store = DocumentChunkStore(DocumentChunker(), embeddings, index)

    stored = await store.store_document_chunks("   ", "file1", "user_123")

    assert stored.chunks_count == 0
    assert stored.namespace == "user-user_123"
    index.upsert.assert_not_awaited()


@pytest.mark.asyncio
async def test_embed_keeps_input_order(embeddings):
    store = DocumentChunkStore(DocumentChunker(), embeddings, AsyncMock())

    vectors = await store.embed(["one", "two"])

    assert vectors[0] == embeddings.embed_query("one")
    assert vectors[1] == embeddings.embed_query("two")
