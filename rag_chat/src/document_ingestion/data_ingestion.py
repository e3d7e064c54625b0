from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.file_repository import FileRepository
from db.models import FileStatus
from rag_chat.exception.custom_exception import InvalidInput, NotFound
from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.src.document_ingestion.chunking import DocumentChunkStore, StoredChunks
from rag_chat.src.document_ingestion.text_extraction import TextExtractor


class FileIngestionPipeline:
    """
    Drives a File through its status lifecycle while turning it into indexed chunks.

        uploading ──> processing ──> completed
        uploaded  ──┘           └──> failed

    - entering `processing` is a compare-and-swap, so a second run for the same file
      is rejected instead of overlapping the first
    - once `processing` is entered every exit path writes `completed` or `failed`
    - the pipeline opens its own DB sessions, it outlives the request that started it
    """

    def __init__(
        self,
        extractor: TextExtractor,
        chunk_store: DocumentChunkStore,
        session_factory: async_sessionmaker[AsyncSession],
        file_repository: Optional[FileRepository] = None,
        preview_chars: int = 5000,
    ):
        self.extractor = extractor
        self.chunk_store = chunk_store
        self.session_factory = session_factory
        self.files = file_repository or FileRepository()
        self.preview_chars = preview_chars

    async def ingest(self, file_id: str, file_url: str, mime_type: str, user_id: str) -> StoredChunks:
        """Extract, chunk, embed and index a stored file."""
        if not file_id:
            raise InvalidInput("Missing required parameters for file processing")

        await self._set_status(file_id, FileStatus.PROCESSING)
        log.info("Starting file processing | file_id=%s | url=%s", file_id, file_url)

        try:
            if not file_url or not mime_type or not user_id:
                raise InvalidInput("Missing required parameters for file processing")

            extracted = await self.extractor.extract(file_url, mime_type)

            file_name = await self._file_name(file_id)
            stored = await self.chunk_store.store_document_chunks(
                extracted.text,
                file_id,
                user_id,
                metadata={
                    **extracted.metadata,
                    "file_name": file_name,
                    "file_type": mime_type,
                },
            )

            await self._complete(file_id, extracted.text, stored)
            return stored

        except Exception as e:
            log.error(
                "Background processing error | file_id=%s | url=%s | type=%s | user_id=%s | error=%s",
                file_id,
                file_url,
                mime_type,
                user_id,
                str(e),
            )
            await self._fail(file_id, e)
            raise

    async def process_extracted_text(
        self,
        file_id: str,
        user_id: str,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StoredChunks:
        """
        Index text that was extracted on the client (image OCR). Skips the extractor
        and otherwise follows the same transitions as `ingest`.
        """
        if not file_id or not text:
            raise InvalidInput("fileId and extractedText are required")

        async with self.session_factory() as db:
            record = await self.files.get_file(db, file_id, user_id)
            if record is None:
                raise NotFound("File not found")
            file_name, file_type = record.file_name, record.file_type

        await self._set_status(file_id, FileStatus.PROCESSING)

        try:
            stored = await self.chunk_store.store_document_chunks(
                text,
                file_id,
                user_id,
                metadata={
                    **(metadata or {}),
                    "file_name": file_name,
                    "file_type": file_type,
                },
            )
            await self._complete(file_id, text, stored)
            return stored

        except Exception as e:
            log.error("Error processing extracted text | file_id=%s | error=%s", file_id, str(e))
            await self._fail(file_id, e)
            raise

    async def run_in_background(self, file_id: str, file_url: str, mime_type: str, user_id: str) -> None:
        """Entry point for detached runs: the outcome lives in the file status only."""
        try:
            await self.ingest(file_id, file_url, mime_type, user_id)
        except Exception as e:
            log.error("Detached ingestion ended with error | file_id=%s | error=%s", file_id, str(e))

    async def _set_status(self, file_id: str, status: FileStatus, **values) -> None:
        async with self.session_factory() as db:
            await self.files.transition_status(db, file_id, status, **values)

    async def _file_name(self, file_id: str) -> Optional[str]:
        async with self.session_factory() as db:
            record = await self.files.get_file(db, file_id)
            return record.file_name if record else None

    async def _complete(self, file_id: str, text: str, stored: StoredChunks) -> None:
        await self._set_status(
            file_id,
            FileStatus.COMPLETED,
            extracted_text=text[: self.preview_chars],
            vector_namespace_id=stored.namespace,
            chunk_count=stored.chunks_count,
            error=None,
        )
        log.info(
            "File processing completed | file_id=%s | chunks=%d | namespace=%s",
            file_id,
            stored.chunks_count,
            stored.namespace,
        )

    async def _fail(self, file_id: str, error: Exception) -> None:
        message = str(error) or error.__class__.__name__
        try:
            await self._set_status(file_id, FileStatus.FAILED, error=message)
        except Exception as db_error:
            log.error(
                "Failed to update file status in database | file_id=%s | error=%s",
                file_id,
                str(db_error),
            )
