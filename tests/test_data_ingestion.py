import httpx
import pytest

from db.file_repository import FileRepository
from db.models import FileStatus
from rag_chat.exception.custom_exception import (
    InvalidInput,
    InvalidStatusTransition,
    NotFound,
    UnsupportedFileType,
)
from rag_chat.src.document_ingestion.data_ingestion import FileIngestionPipeline
from rag_chat.src.document_ingestion.text_extraction import TextExtractor

DOCUMENT = "Retrieval augmented generation grounds answers in documents. " * 12


def _pipeline(session_factory, chunk_store, body=DOCUMENT.encode(), preview_chars=5000):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body)

    extractor = TextExtractor(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    return FileIngestionPipeline(
        extractor=extractor,
        chunk_store=chunk_store,
        session_factory=session_factory,
        preview_chars=preview_chars,
    )


async def _reload(session_factory, file_id):
    async with session_factory() as db:
        return await FileRepository().get_file(db, file_id)


@pytest.mark.asyncio
async def test_ingest_completes_and_indexes(session_factory, chunk_store, vector_index, make_file):
    record = await make_file()
    pipeline = _pipeline(session_factory, chunk_store, preview_chars=20)

    stored = await pipeline.ingest(record.id, record.storage_url, "text/plain", "user_123")

    done = await _reload(session_factory, record.id)
    assert done.status == FileStatus.COMPLETED.value
    assert done.vector_namespace_id == "user-user_123"
    assert done.chunk_count == stored.chunks_count > 1
    assert done.extracted_text == DOCUMENT[:20]
    assert done.error is None

    ids = await vector_index.list_ids("user-user_123", f"{record.id}-chunk-")
    assert len(ids) == stored.chunks_count


@pytest.mark.asyncio
async def test_ingested_chunks_are_queryable(session_factory, chunk_store, vector_index, embeddings, make_file):
    record = await make_file()
    await _pipeline(session_factory, chunk_store).ingest(
        record.id, record.storage_url, "text/plain", "user_123"
    )

    hits = await vector_index.query("user-user_123", embeddings.embed_query("anything"), top_k=1)
    assert hits[0].file_id == record.id


@pytest.mark.asyncio
async def test_empty_text_completes_with_zero_chunks(session_factory, chunk_store, make_file):
    record = await make_file()
    pipeline = _pipeline(session_factory, chunk_store, body=b"   \n  ")

    stored = await pipeline.ingest(record.id, record.storage_url, "text/plain", "user_123")

    done = await _reload(session_factory, record.id)
    assert stored.chunks_count == 0
    assert done.status == FileStatus.COMPLETED.value
    assert done.chunk_count == 0


@pytest.mark.asyncio
async def test_extraction_error_marks_file_failed(session_factory, chunk_store, make_file):
    record = await make_file(file_type="application/zip")
    pipeline = _pipeline(session_factory, chunk_store)

    with pytest.raises(UnsupportedFileType):
        await pipeline.ingest(record.id, record.storage_url, "application/zip", "user_123")

    failed = await _reload(session_factory, record.id)
    assert failed.status == FileStatus.FAILED.value
    assert failed.error == "Unsupported file type: application/zip"


@pytest.mark.asyncio
async def test_missing_parameters_fail_after_taking_ownership(session_factory, chunk_store, make_file):
    record = await make_file()
    pipeline = _pipeline(session_factory, chunk_store)

    with pytest.raises(InvalidInput):
        await pipeline.ingest(record.id, "", "text/plain", "user_123")

    assert (await _reload(session_factory, record.id)).status == FileStatus.FAILED.value


@pytest.mark.asyncio
async def test_second_ingest_is_rejected(session_factory, chunk_store, make_file):
    record = await make_file()
    pipeline = _pipeline(session_factory, chunk_store)
    await pipeline.ingest(record.id, record.storage_url, "text/plain", "user_123")

    with pytest.raises(InvalidStatusTransition):
        await pipeline.ingest(record.id, record.storage_url, "text/plain", "user_123")

    assert (await _reload(session_factory, record.id)).status == FileStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_run_in_background_swallows_errors(session_factory, chunk_store, make_file):
    record = await make_file()
    pipeline = _pipeline(session_factory, chunk_store, body=b"")

    await pipeline.run_in_background(record.id, record.storage_url, "text/plain", "user_123")

    failed = await _reload(session_factory, record.id)
    assert failed.status == FileStatus.FAILED.value
    assert "empty" in failed.error


@pytest.mark.asyncio
async def test_process_extracted_text_indexes_ocr_text(session_factory, chunk_store, make_file):
    record = await make_file(file_name="scan.png", file_type="image/png", status=FileStatus.UPLOADED)
    pipeline = _pipeline(session_factory, chunk_store)

    stored = await pipeline.process_extracted_text(
        record.id, "user_123", "Invoice total 42 EUR", {"confidence": 0.91}
    )

    done = await _reload(session_factory, record.id)
    assert stored.chunks_count == 1
    assert done.status == FileStatus.COMPLETED.value
    assert done.extracted_text == "Invoice total 42 EUR"


@pytest.mark.asyncio
async def test_process_extracted_text_checks_owner(session_factory, chunk_store, make_file):
    record = await make_file(status=FileStatus.UPLOADED)
    pipeline = _pipeline(session_factory, chunk_store)

    with pytest.raises(NotFound):
        await pipeline.process_extracted_text(record.id, "someone_else", "text")

    assert (await _reload(session_factory, record.id)).status == FileStatus.UPLOADED.value


@pytest.mark.asyncio
async def test_process_extracted_text_requires_text(session_factory, chunk_store, make_file):
    record = await make_file(status=FileStatus.UPLOADED)
    pipeline = _pipeline(session_factory, chunk_store)

    with pytest.raises(InvalidInput):
        await pipeline.process_extracted_text(record.id, "user_123", "")
