from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from rag_chat.exception.custom_exception import MemoryStoreError
from rag_chat.logger import GLOBAL_LOGGER as log


class MemoryClient:
    """
    Client for a mem0-style long-term memory service.

    `fixed_user_id` pins every read and write to one configured end user, which is
    how the service was used before per-user scoping; leave it unset to scope
    memories by the authenticated caller.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        fixed_user_id: Optional[str] = None,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.fixed_user_id = fixed_user_id
        headers = {"Authorization": f"Token {api_key}"} if api_key else {}
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout
        )

    def resolve_user_id(self, request_user_id: str) -> str:
        return self.fixed_user_id or request_user_id

    async def add(self, messages: List[Dict[str, str]], user_id: str) -> None:
        end_user = self.resolve_user_id(user_id)
        try:
            response = await self._client.post(
                "/v1/memories/", json={"messages": messages, "user_id": end_user}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            log.error("Failed to add memory | user_id=%s | error=%s", end_user, str(e))
            raise MemoryStoreError(f"Failed to add memory: {e}", e) from e

        log.info("Memory stored | user_id=%s | messages=%d", end_user, len(messages))

    async def search(self, query: str, user_id: str) -> List[str]:
        end_user = self.resolve_user_id(user_id)
        try:
            response = await self._client.post(
                "/v1/memories/search/", json={"query": query, "user_id": end_user}
            )
            response.raise_for_status()
            payload: Any = response.json()
        except (httpx.HTTPError, ValueError) as e:
            log.error("Failed to get relevant memory | user_id=%s | error=%s", end_user, str(e))
            raise MemoryStoreError(f"Failed to get relevant memory: {e}", e) from e

        # the service answers either a bare list or {"results": [...]}
        results = payload.get("results", []) if isinstance(payload, dict) else payload
        memories = [
            item["memory"]
            for item in results or []
            if isinstance(item, dict) and item.get("memory")
        ]
        log.info("Relevant memory retrieved | user_id=%s | count=%d", end_user, len(memories))
        return memories

    async def aclose(self) -> None:
        await self._client.aclose()
