from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from api.dependencies import get_blob_storage
from rag_chat.exception.custom_exception import NotFound
from rag_chat.utils.file_io import LocalBlobStorage

router = APIRouter()


@router.get("/blobs/{public_id:path}")
async def get_blob(public_id: str, storage: LocalBlobStorage = Depends(get_blob_storage)):
    """
    Serves stored uploads by public id, without bearer auth: the ingestion
    pipeline fetches this URL server side, and clients embed it as a plain link.

    The exposure is deliberate and matches public object-storage URLs. The only
    guard is the random suffix `safe_file_name` puts in every public id, so anyone
    holding the URL can read the file.
    """
    path = storage.resolve_path(public_id)
    if not path.is_file():
        raise NotFound("Blob not found")
    return FileResponse(path)
