from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ChatMessageIn(CamelModel):
    role: str = "user"
    content: str


class ChatRequest(CamelModel):
    messages: List[ChatMessageIn] = Field(min_length=1)
    chat_id: Optional[str] = None
    file_ids: Optional[List[str]] = None


class MessageOut(CamelModel):
    id: str
    role: str
    content: str
    created_at: datetime


class ChatResponse(CamelModel):
    message: MessageOut
    chat_id: str
    files_processing: Optional[bool] = None


class ChatSummary(CamelModel):
    id: str
    title: str
    created_at: datetime
    updated_at: datetime


class CreateChatRequest(CamelModel):
    title: Optional[str] = None


class UpdateChatRequest(CamelModel):
    title: Optional[str] = None


class FileSummary(CamelModel):
    id: str
    chat_id: Optional[str] = None
    file_name: str
    file_type: str
    file_size: int
    url: str
    status: str
    extracted_text: Optional[str] = None
    vector_namespace_id: Optional[str] = None
    chunk_count: Optional[int] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UploadResponse(CamelModel):
    success: bool = True
    file: FileSummary


class FileListResponse(CamelModel):
    files: List[FileSummary]


class FileResponse(CamelModel):
    file: FileSummary


class DeleteFileResponse(CamelModel):
    success: bool = True
    vectors_deleted: int = 0
    warning: Optional[str] = None


class ProcessOcrRequest(CamelModel):
    file_id: Optional[str] = None
    extracted_text: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ProcessOcrResponse(CamelModel):
    success: bool = True
    message: str = "Text processed and stored successfully"
    file_id: str
    chunks_count: int
