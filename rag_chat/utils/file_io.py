from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from pathlib import Path

from rag_chat.exception.custom_exception import InvalidInput, StorageError
from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.utils.thread_pool import run_sync


@dataclass
class StoredBlob:
    url: str
    public_id: str


def safe_file_name(name: str) -> str:
    """`My Report (1).PDF` -> `my_report__1__<uuid>.pdf`"""
    path = Path(name or "file")
    extension = path.suffix.lower()
    # Clean file name (only alphanum, dash, underscore)
    stem = re.sub(r"[^a-zA-Z0-9_\-]", "_", path.stem).lower() or "file"
    return f"{stem}_{uuid.uuid4().hex[:8]}{extension}"


class LocalBlobStorage:
    """
    Raw upload storage on local disk, laid out as `<base_dir>/<user_id>/<file>`.

    The public id is the path relative to `base_dir`; the URL is that id under
    `public_base_url`, which is what the ingestion pipeline fetches.
    """

    def __init__(self, base_dir: str | Path, public_base_url: str):
        self.base_dir = Path(base_dir).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def resolve_path(self, public_id: str) -> Path:
        path = (self.base_dir / public_id).resolve()
        if path == self.base_dir or self.base_dir not in path.parents:
            raise InvalidInput(f"Invalid blob reference: {public_id}")
        return path

    async def save(self, data: bytes, filename: str, user_id: str) -> StoredBlob:
        owner_dir = re.sub(r"[^a-zA-Z0-9_\-]", "_", user_id) or "anonymous"
        public_id = f"{owner_dir}/{safe_file_name(filename)}"
        path = self.resolve_path(public_id)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)

        try:
            await run_sync(_write)
        except OSError as e:
            log.error("Failed to save uploaded file | name=%s | error=%s", filename, str(e))
            raise StorageError("Failed to save uploaded file", e) from e

        log.info("File saved | uploaded=%s | saved_as=%s | bytes=%d", filename, public_id, len(data))
        return StoredBlob(url=f"{self.public_base_url}/{public_id}", public_id=public_id)

    async def delete(self, public_id: str) -> None:
        path = self.resolve_path(public_id)
        try:
            await run_sync(path.unlink)
        except FileNotFoundError:
            log.warning("Blob already missing | public_id=%s", public_id)
            return
        except OSError as e:
            raise StorageError(f"Failed to delete blob {public_id}", e) from e

        log.info("Blob deleted | public_id=%s", public_id)
