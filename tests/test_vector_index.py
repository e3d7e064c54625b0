import asyncio

import pytest

from rag_chat.src.vector_store.vector_index import (
    FaissVectorIndex,
    VectorRecord,
    chunk_id,
)

NAMESPACE = "user-user_123"


async def _index_file(vector_index, embeddings, file_id, texts, namespace=NAMESPACE):
    records = [
        VectorRecord(
            id=chunk_id(file_id, i),
            vector=embeddings.embed_query(text),
            metadata={"text": text, "file_id": file_id, "chunk_index": i},
        )
        for i, text in enumerate(texts)
    ]
    await vector_index.upsert(namespace, records)
    return records


class NonListingIndex(FaissVectorIndex):
    async def list_ids(self, namespace, prefix):
        raise NotImplementedError


class BrokenDeleteIndex(FaissVectorIndex):
    async def list_ids(self, namespace, prefix):
        raise RuntimeError("listing unavailable")

    async def delete_ids(self, namespace, ids):
        raise RuntimeError("index unreachable")


@pytest.mark.asyncio
async def test_query_returns_exact_match_first(vector_index, embeddings):
    await _index_file(vector_index, embeddings, "f1", ["cats purr", "dogs bark", "birds sing"])

    hits = await vector_index.query(NAMESPACE, embeddings.embed_query("dogs bark"), top_k=3)

    assert hits[0].text == "dogs bark"
    assert hits[0].file_id == "f1"
    assert hits[0].chunk_index == 1
    assert hits[0].score == pytest.approx(1.0)
    assert [h.score for h in hits] == sorted((h.score for h in hits), reverse=True)


@pytest.mark.asyncio
async def test_query_filter_limits_to_file_ids(vector_index, embeddings):
    await _index_file(vector_index, embeddings, "f1", ["alpha", "beta"])
    await _index_file(vector_index, embeddings, "f2", ["gamma", "delta"])
    await _index_file(vector_index, embeddings, "f3", ["epsilon"])

    hits = await vector_index.query(
        NAMESPACE, embeddings.embed_query("epsilon"), top_k=10, filter={"file_id": ["f1", "f2"]}
    )

    assert {h.file_id for h in hits} == {"f1", "f2"}
    assert len(hits) == 4


@pytest.mark.asyncio
async def test_namespaces_are_isolated(vector_index, embeddings):
    await _index_file(vector_index, embeddings, "f1", ["alpha"], namespace="user-a")

    assert await vector_index.query("user-b", embeddings.embed_query("alpha")) == []


@pytest.mark.asyncio
async def test_upsert_overwrites_same_ids(vector_index, embeddings):
    await _index_file(vector_index, embeddings, "f1", ["alpha", "beta"])
    await _index_file(vector_index, embeddings, "f1", ["alpha v2", "beta v2"])

    ids = await vector_index.list_ids(NAMESPACE, "f1-chunk-")
    hits = await vector_index.query(NAMESPACE, embeddings.embed_query("alpha v2"), top_k=10)

    assert sorted(ids) == ["f1-chunk-0", "f1-chunk-1"]
    assert {h.text for h in hits} == {"alpha v2", "beta v2"}


@pytest.mark.asyncio
async def test_delete_by_file_id_only_touches_that_file(vector_index, embeddings):
    await _index_file(vector_index, embeddings, "f1", ["alpha", "beta", "gamma"])
    await _index_file(vector_index, embeddings, "f2", ["delta"])

    result = await vector_index.delete_by_file_id(NAMESPACE, "f1")

    assert result.success is True
    assert result.deleted_count == 3
    assert result.warning is None
    assert await vector_index.list_ids(NAMESPACE, "f1-chunk-") == []
    assert await vector_index.list_ids(NAMESPACE, "f2-chunk-") == ["f2-chunk-0"]


@pytest.mark.asyncio
async def test_delete_persists_to_disk(tmp_path, embeddings):
    first = FaissVectorIndex(tmp_path / "idx", embeddings)
    await _index_file(first, embeddings, "f1", ["alpha", "beta"])
    await first.delete_by_file_id(NAMESPACE, "f1")
    await _index_file(first, embeddings, "f2", ["gamma"])

    reopened = FaissVectorIndex(tmp_path / "idx", embeddings)

    assert await reopened.list_ids(NAMESPACE, "") == ["f2-chunk-0"]


@pytest.mark.asyncio
async def test_delete_without_listing_rebuilds_ids(tmp_path, embeddings):
    index = NonListingIndex(tmp_path / "idx", embeddings, delete_guess_limit=50, delete_batch_size=10)
    await _index_file(index, embeddings, "f1", ["alpha", "beta", "gamma"])
    await _index_file(index, embeddings, "f2", ["delta"])

    result = await index.delete_by_file_id(NAMESPACE, "f1")

    assert result.success is True
    assert result.deleted_count == 3
    assert result.warning is None
    remaining = await FaissVectorIndex.list_ids(index, NAMESPACE, "")
    assert remaining == ["f2-chunk-0"]


@pytest.mark.asyncio
async def test_delete_without_listing_uses_known_chunk_count(tmp_path, embeddings):
    index = NonListingIndex(tmp_path / "idx", embeddings, delete_guess_limit=1, delete_batch_size=1)
    await _index_file(index, embeddings, "f1", ["alpha", "beta", "gamma"])

    result = await index.delete_by_file_id(NAMESPACE, "f1", chunk_count=3)

    assert result.deleted_count == 3


@pytest.mark.asyncio
async def test_delete_of_unknown_file_is_a_no_op(tmp_path, embeddings):
    index = NonListingIndex(tmp_path / "idx", embeddings, delete_guess_limit=20, delete_batch_size=10)

    result = await index.delete_by_file_id(NAMESPACE, "missing")

    assert result.success is True
    assert result.deleted_count == 0
    assert result.warning is None


@pytest.mark.asyncio
async def test_delete_failures_are_soft(tmp_path, embeddings):
    index = BrokenDeleteIndex(tmp_path / "idx", embeddings, delete_guess_limit=20, delete_batch_size=10)

    result = await index.delete_by_file_id(NAMESPACE, "f1")

    assert result.success is True
    assert result.deleted_count == 0
    assert result.warning == "Deletion completed with warnings"


@pytest.mark.asyncio
async def test_query_waits_for_namespace_writer(vector_index, embeddings):
    await _index_file(vector_index, embeddings, "f1", ["alpha", "beta"])

    async with vector_index._locks[NAMESPACE]:
        pending = asyncio.create_task(
            vector_index.query(NAMESPACE, embeddings.embed_query("alpha"), top_k=2)
        )
        await asyncio.sleep(0.05)
        assert not pending.done()

    hits = await pending
    assert hits[0].text == "alpha"


@pytest.mark.asyncio
async def test_queries_during_reingestion_never_fail(vector_index, embeddings):
    await _index_file(vector_index, embeddings, "base", [f"base passage {i}" for i in range(200)])
    hot_texts = [f"hot passage {i}" for i in range(200)]

    async def writer():
        for _ in range(10):
            await _index_file(vector_index, embeddings, "hot", hot_texts)

    async def reader():
        results = []
        for i in range(50):
            results.append(
                await vector_index.query(
                    NAMESPACE,
                    embeddings.embed_query(f"base passage {i}"),
                    top_k=3,
                    filter={"file_id": ["base", "hot"]},
                )
            )
        return results

    outcomes = await asyncio.gather(writer(), reader(), reader(), return_exceptions=True)

    errors = [o for o in outcomes if isinstance(o, Exception)]
    assert errors == []
    for results in outcomes[1:]:
        assert all(len(hits) == 3 for hits in results)
