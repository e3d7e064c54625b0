import pytest

from rag_chat.exception.custom_exception import InvalidInput
from rag_chat.utils.file_io import LocalBlobStorage, safe_file_name


def test_safe_file_name_keeps_extension():
    name = safe_file_name("My Report (1).PDF")

    assert name.startswith("my_report__1__")
    assert name.endswith(".pdf")


@pytest.mark.asyncio
async def test_save_and_delete_round_trip(tmp_path):
    storage = LocalBlobStorage(tmp_path / "uploads", "http://files.test/blobs/")

    blob = await storage.save(b"hello", "notes.txt", "user_123")

    assert blob.public_id.startswith("user_123/notes_")
    assert blob.url == f"http://files.test/blobs/{blob.public_id}"
    assert storage.resolve_path(blob.public_id).read_bytes() == b"hello"

    await storage.delete(blob.public_id)
    assert not storage.resolve_path(blob.public_id).exists()

    # second delete is a no-op
    await storage.delete(blob.public_id)


@pytest.mark.parametrize("public_id", ["../secret.txt", "user/../../etc/passwd", ""])
def test_resolve_path_rejects_escapes(tmp_path, public_id):
    storage = LocalBlobStorage(tmp_path / "uploads", "http://files.test/blobs")

    with pytest.raises(InvalidInput):
        storage.resolve_path(public_id)
