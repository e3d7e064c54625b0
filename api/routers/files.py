from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile

from api.dependencies import (
    CurrentUser,
    get_blob_storage,
    get_chat_repository,
    get_current_user,
    get_file_repository,
    get_ingestion_pipeline,
    get_vector_index,
)
from api.schemas import (
    DeleteFileResponse,
    FileListResponse,
    FileResponse,
    FileSummary,
    ProcessOcrRequest,
    ProcessOcrResponse,
    UploadResponse,
)
from db.chat_repository import ChatRepository
from db.database import get_db
from db.file_repository import FileRepository
from db.models import File as FileRecord
from db.models import FileStatus
from rag_chat.exception.custom_exception import InvalidInput, NotFound, RagChatException
from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.src.document_ingestion.data_ingestion import FileIngestionPipeline
from rag_chat.src.document_ingestion.text_extraction import FileCategory, classify_mime_type
from rag_chat.src.vector_store.vector_index import VectorIndex, namespace_for_user
from rag_chat.utils.config_loader import get_config
from rag_chat.utils.file_io import LocalBlobStorage

router = APIRouter()


def _summary(record: FileRecord) -> FileSummary:
    return FileSummary(
        id=record.id,
        chat_id=record.chat_id,
        file_name=record.file_name,
        file_type=record.file_type,
        file_size=record.file_size,
        url=record.storage_url,
        status=record.status,
        extracted_text=record.extracted_text,
        vector_namespace_id=record.vector_namespace_id,
        chunk_count=record.chunk_count,
        error=record.error,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.post("/files", response_model=UploadResponse)
async def upload_file(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    chat_id: Optional[str] = Form(None, alias="chatId"),
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
    chats: ChatRepository = Depends(get_chat_repository),
    files: FileRepository = Depends(get_file_repository),
    storage: LocalBlobStorage = Depends(get_blob_storage),
    pipeline: FileIngestionPipeline = Depends(get_ingestion_pipeline),
):
    """
    Upload endpoint:
      - Stores the raw bytes and creates the File record (`uploading`)
      - Documents: ingestion starts detached, after the response is sent
      - Images: parked in `uploaded` until the client posts its OCR text
    """
    data = await file.read()
    if not data:
        raise InvalidInput("No file provided")

    max_mb = get_config().get("storage", {}).get("max_file_size_mb", 20)
    if len(data) > max_mb * 1024 * 1024:
        raise InvalidInput(f"File exceeds the {max_mb} MB limit")

    if chat_id and await chats.get_chat(db, chat_id, user.user_id) is None:
        raise NotFound("Chat not found")

    file_name = file.filename or "file"
    mime_type = file.content_type or "application/octet-stream"

    blob = await storage.save(data, file_name, user.user_id)
    record = await files.create_file(
        db,
        user_id=user.user_id,
        chat_id=chat_id,
        file_name=file_name,
        file_type=mime_type,
        file_size=len(data),
        storage_url=blob.url,
        storage_public_id=blob.public_id,
        status=FileStatus.UPLOADING.value,
    )

    summary = _summary(record)
    if classify_mime_type(mime_type) is FileCategory.IMAGE:
        await files.transition_status(db, record.id, FileStatus.UPLOADED)
        summary.status = FileStatus.UPLOADED.value
    else:
        background_tasks.add_task(
            pipeline.run_in_background, record.id, blob.url, mime_type, user.user_id
        )
        # the detached run takes ownership right after this response
        summary.status = FileStatus.PROCESSING.value

    log.info(
        "Upload accepted | file_id=%s | type=%s | bytes=%d | status=%s",
        record.id,
        mime_type,
        len(data),
        summary.status,
    )
    return UploadResponse(file=summary)


@router.get("/files", response_model=FileListResponse)
async def list_files(
    chat_id: Optional[str] = Query(None, alias="chatId"),
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
    files: FileRepository = Depends(get_file_repository),
):
    records = await files.list_files(db, user.user_id, chat_id=chat_id)
    return FileListResponse(files=[_summary(r) for r in records])


@router.get("/files/{file_id}", response_model=FileResponse)
async def get_file(
    file_id: str,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
    files: FileRepository = Depends(get_file_repository),
):
    record = await files.get_file(db, file_id, user.user_id)
    if record is None:
        raise NotFound("File not found")
    return FileResponse(file=_summary(record))


@router.delete("/files/{file_id}", response_model=DeleteFileResponse)
async def delete_file(
    file_id: str,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
    files: FileRepository = Depends(get_file_repository),
    storage: LocalBlobStorage = Depends(get_blob_storage),
    vector_index: VectorIndex = Depends(get_vector_index),
):
    """
    Vectors first (best effort), then the blob, then the record. Only a missing
    or foreign file is an error.
    """
    record = await files.get_file(db, file_id, user.user_id)
    if record is None:
        raise NotFound("File not found")

    namespace = record.vector_namespace_id or namespace_for_user(user.user_id)
    deletion = await vector_index.delete_by_file_id(namespace, record.id, record.chunk_count)

    try:
        await storage.delete(record.storage_public_id)
    except RagChatException as e:
        log.warning("Blob deletion failed | file_id=%s | error=%s", record.id, str(e))

    await files.delete_file(db, record.id)

    log.info(
        "File deleted | file_id=%s | vectors_deleted=%d | warning=%s",
        record.id,
        deletion.deleted_count,
        deletion.warning,
    )
    return DeleteFileResponse(vectors_deleted=deletion.deleted_count, warning=deletion.warning)


@router.post("/process-ocr", response_model=ProcessOcrResponse)
async def process_ocr(
    req: ProcessOcrRequest,
    user: CurrentUser = Depends(get_current_user),
    pipeline: FileIngestionPipeline = Depends(get_ingestion_pipeline),
):
    """
    Index text that the client extracted from an image.
    """
    if not req.file_id or not req.extracted_text:
        raise InvalidInput("fileId and extractedText are required")

    stored = await pipeline.process_extracted_text(
        req.file_id, user.user_id, req.extracted_text, req.metadata
    )
    return ProcessOcrResponse(file_id=req.file_id, chunks_count=stored.chunks_count)
