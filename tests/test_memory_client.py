import json

import httpx
import pytest

from rag_chat.exception.custom_exception import MemoryStoreError
from rag_chat.src.memory.memory_client import MemoryClient


def _client(handler, fixed_user_id=None):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://mem.test")
    return MemoryClient("https://mem.test", fixed_user_id=fixed_user_id, http_client=http)


@pytest.mark.asyncio
async def test_search_returns_memory_texts():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"results": [{"memory": "Likes tea"}, {"id": "no-text"}, {"memory": "Lives in Oslo"}]}
        )

    memories = await _client(handler).search("drinks?", "user_123")

    assert memories == ["Likes tea", "Lives in Oslo"]
    assert seen["path"] == "/v1/memories/search/"
    assert seen["body"] == {"query": "drinks?", "user_id": "user_123"}


@pytest.mark.asyncio
async def test_search_accepts_bare_list():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"memory": "Prefers metric units"}])

    assert await _client(handler).search("units", "user_123") == ["Prefers metric units"]


@pytest.mark.asyncio
async def test_fixed_user_id_overrides_caller():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "m1"})

    client = _client(handler, fixed_user_id="shared-user")
    await client.add([{"role": "user", "content": "hi"}], "user_123")

    assert seen["body"]["user_id"] == "shared-user"
    assert client.resolve_user_id("user_123") == "shared-user"


@pytest.mark.asyncio
async def test_errors_raise_memory_store_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"detail": "boom"})

    client = _client(handler)

    with pytest.raises(MemoryStoreError):
        await client.search("q", "user_123")
    with pytest.raises(MemoryStoreError):
        await client.add([{"role": "user", "content": "hi"}], "user_123")
