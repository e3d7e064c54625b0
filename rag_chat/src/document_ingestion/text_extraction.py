from __future__ import annotations

import enum
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from langchain_community.document_loaders import CSVLoader, Docx2txtLoader, PyPDFLoader
from langchain_core.documents import Document

from rag_chat.exception.custom_exception import (
    ExtractionError,
    FetchError,
    RagChatException,
    UnsupportedFileType,
    UnsupportedOperation,
)
from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.utils.thread_pool import run_sync


class FileCategory(str, enum.Enum):
    PDF = "pdf"
    DOCX = "docx"
    TEXT = "text"
    CSV = "csv"
    IMAGE = "image"
    UNSUPPORTED = "unsupported"


@dataclass
class ExtractedContent:
    text: str
    page_count: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def classify_mime_type(mime_type: str) -> FileCategory:
    """
    Map a declared MIME type onto the closed set of formats we can read.
    Precedence: PDF, Word, plain text, CSV, image, with one exception: a type naming
    csv is never plain text, so `text/csv` reaches the CSV loader (row metadata)
    even though it also contains "text".
    """
    mime = (mime_type or "").strip().lower()

    if "pdf" in mime:
        return FileCategory.PDF
    if "docx" in mime or "word" in mime:
        return FileCategory.DOCX
    if ("text" in mime or "txt" in mime) and "csv" not in mime:
        return FileCategory.TEXT
    if "csv" in mime:
        return FileCategory.CSV
    if "image" in mime:
        return FileCategory.IMAGE
    return FileCategory.UNSUPPORTED


def _load_with(loader_cls, data: bytes, suffix: str, **loader_kwargs) -> List[Document]:
    """LangChain loaders read from disk, so stage the bytes in a temp dir first."""
    with tempfile.TemporaryDirectory(prefix="extract_") as tmp:
        path = Path(tmp) / f"upload{suffix}"
        path.write_bytes(data)
        return loader_cls(str(path), **loader_kwargs).load()


class TextExtractor:
    """
    Turns a stored file (URL + MIME type) into plain text.

    Images are never handled here: their text comes from client-side OCR and is
    reported through the OCR endpoint instead.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 60.0):
        self._http_client = http_client
        self.timeout = timeout

    async def fetch(self, file_url: str) -> bytes:
        try:
            if self._http_client is not None:
                response = await self._http_client.get(file_url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    response = await client.get(file_url)
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to fetch file: {e}", e) from e

        if response.status_code < 200 or response.status_code >= 300:
            raise FetchError(
                f"Failed to fetch file: {response.status_code} {response.reason_phrase}"
            )

        content = response.content
        if not content:
            raise FetchError("File buffer is empty or invalid")

        log.info("File fetched successfully | url=%s | bytes=%d", file_url, len(content))
        return content

    async def extract(self, file_url: str, mime_type: str) -> ExtractedContent:
        data = await self.fetch(file_url)
        category = classify_mime_type(mime_type)

        if category is FileCategory.IMAGE:
            raise UnsupportedOperation(
                "Image OCR processing should be done on the client side"
            )
        if category is FileCategory.UNSUPPORTED:
            raise UnsupportedFileType(f"Unsupported file type: {mime_type}")

        handlers = {
            FileCategory.PDF: self._extract_pdf,
            FileCategory.DOCX: self._extract_docx,
            FileCategory.TEXT: self._extract_text,
            FileCategory.CSV: self._extract_csv,
        }
        label = category.value.upper()

        try:
            content = await handlers[category](data)
        except RagChatException:
            raise
        except Exception as e:
            log.error("%s extraction error | error=%s", label, str(e))
            raise ExtractionError(
                f"Failed to extract text from {label}: {e}", e
            ) from e

        log.info(
            "Text extracted | type=%s | chars=%d | pages=%s",
            category.value,
            len(content.text),
            content.page_count,
        )
        return content

    async def _extract_pdf(self, data: bytes) -> ExtractedContent:
        pages = await run_sync(_load_with, PyPDFLoader, data, ".pdf")

        if not pages:
            raise ExtractionError(
                "Failed to extract text from PDF: No content could be extracted from PDF"
            )

        text = "\n\n".join(page.page_content for page in pages)
        metadata: Dict[str, Any] = {"type": "pdf", "pages": len(pages)}

        if not text.strip():
            # scanned PDF without a text layer: nothing to index, not a failure
            log.warning("PDF extracted but contains no readable text | pages=%d", len(pages))
            metadata["warning"] = "PDF contains no readable text content"
            return ExtractedContent(text="", page_count=len(pages), metadata=metadata)

        return ExtractedContent(text=text, page_count=len(pages), metadata=metadata)

    async def _extract_docx(self, data: bytes) -> ExtractedContent:
        docs = await run_sync(_load_with, Docx2txtLoader, data, ".docx")
        text = "\n\n".join(doc.page_content for doc in docs)
        return ExtractedContent(text=text, metadata={"type": "docx"})

    async def _extract_text(self, data: bytes) -> ExtractedContent:
        text = data.decode("utf-8", errors="replace")
        return ExtractedContent(text=text, metadata={"type": "text"})

    async def _extract_csv(self, data: bytes) -> ExtractedContent:
        rows = await run_sync(_load_with, CSVLoader, data, ".csv", encoding="utf-8")
        text = "\n\n".join(row.page_content for row in rows)
        return ExtractedContent(text=text, metadata={"type": "csv", "rows": len(rows)})
