from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from cachetools import TTLCache
from langchain_community.vectorstores import FAISS
from langchain_core.embeddings import Embeddings

from rag_chat.exception.custom_exception import StorageError, VectorNotFoundError
from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.utils.thread_pool import run_sync


def chunk_id(file_id: str, index: int) -> str:
    return f"{file_id}-chunk-{index}"


def chunk_id_prefix(file_id: str) -> str:
    return f"{file_id}-chunk-"


def namespace_for_user(user_id: str) -> str:
    return f"user-{user_id}"


def _metadata_matcher(filter: Dict[str, Any]) -> Callable[[Dict[str, Any]], bool]:
    """Exact-match predicate; list/tuple/set values mean "any of"."""

    def _matches(metadata: Dict[str, Any]) -> bool:
        for key, expected in filter.items():
            value = metadata.get(key)
            if isinstance(expected, (list, tuple, set, frozenset)):
                if value not in expected:
                    return False
            elif value != expected:
                return False
        return True

    return _matches


@dataclass
class VectorRecord:
    id: str
    vector: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RetrievedChunk:
    text: str
    score: float
    file_id: str
    chunk_index: int


@dataclass
class DeletionResult:
    success: bool
    deleted_count: int
    warning: Optional[str] = None


class VectorIndex(ABC):
    """
    Namespaced nearest-neighbour store.

    Subclasses provide the primitive operations; deleting every chunk of a file is
    shared here because it has to work whether or not the store can list ids.
    """

    def __init__(self, delete_guess_limit: int = 500, delete_batch_size: int = 100):
        self.delete_guess_limit = delete_guess_limit
        self.delete_batch_size = delete_batch_size

    @abstractmethod
    async def upsert(self, namespace: str, records: Sequence[VectorRecord]) -> int:
        """Insert records, overwriting any with the same id. Returns the count written."""

    @abstractmethod
    async def query(
        self,
        namespace: str,
        vector: List[float],
        top_k: int = 5,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[RetrievedChunk]:
        """
        Up to `top_k` chunks ordered by descending similarity. `filter` is an
        exact match on metadata; a list value means "any of".
        """

    @abstractmethod
    async def delete_ids(self, namespace: str, ids: Sequence[str]) -> int:
        """Delete the given ids, returning how many existed."""

    async def list_ids(self, namespace: str, prefix: str) -> List[str]:
        raise NotImplementedError

    async def delete_by_file_id(
        self, namespace: str, file_id: str, chunk_count: Optional[int] = None
    ) -> DeletionResult:
        """
        Remove every `{file_id}-chunk-N` vector from the namespace.

        Listing by prefix is tried first. Without it the ids are rebuilt from the
        known chunk count, or from `delete_guess_limit` when the count is unknown.
        Failures never propagate: the caller always gets success, with a warning.
        """
        prefix = chunk_id_prefix(file_id)

        listed: Optional[List[str]] = None
        try:
            listed = await self.list_ids(namespace, prefix)
        except NotImplementedError:
            log.info("Vector index cannot list ids, rebuilding chunk ids | file_id=%s", file_id)
        except Exception as e:
            log.warning(
                "Listing vector ids failed, rebuilding chunk ids | file_id=%s | error=%s",
                file_id,
                str(e),
            )

        if listed is not None:
            deleted, failed = await self._delete_in_batches(namespace, listed)
            if not failed:
                log.info(
                    "Vectors deleted by listing | namespace=%s | file_id=%s | deleted=%d",
                    namespace,
                    file_id,
                    deleted,
                )
                return DeletionResult(success=True, deleted_count=deleted)

        guess = chunk_count if chunk_count is not None else self.delete_guess_limit
        candidate_ids = [chunk_id(file_id, i) for i in range(guess)]
        deleted, failed = await self._delete_in_batches(namespace, candidate_ids)

        if failed:
            log.warning(
                "Vector deletion completed with warnings | namespace=%s | file_id=%s | failed_batches=%d",
                namespace,
                file_id,
                failed,
            )
            return DeletionResult(
                success=True,
                deleted_count=deleted,
                warning="Deletion completed with warnings",
            )

        log.info(
            "Vectors deleted by id range | namespace=%s | file_id=%s | range=%d | deleted=%d",
            namespace,
            file_id,
            guess,
            deleted,
        )
        return DeletionResult(success=True, deleted_count=deleted)

    async def _delete_in_batches(self, namespace: str, ids: Sequence[str]) -> tuple[int, int]:
        deleted = 0
        failed = 0
        for start in range(0, len(ids), self.delete_batch_size):
            batch = list(ids[start : start + self.delete_batch_size])
            try:
                deleted += await self.delete_ids(namespace, batch)
            except VectorNotFoundError:
                log.debug("Batch had no matching vectors | batch_start=%d", start)
            except Exception as e:
                failed += 1
                log.warning("Batch deletion warning | batch_start=%d | error=%s", start, str(e))
        return deleted, failed


class FaissVectorIndex(VectorIndex):
    """
    One FAISS index directory per namespace: `{base_dir}/{namespace}/index.faiss|index.pkl`.

    All access to a namespace (queries included) is serialized with an asyncio
    lock, and the index is saved to disk after every mutation.
    """

    def __init__(
        self,
        base_dir: str | Path,
        embeddings: Embeddings,
        delete_guess_limit: int = 500,
        delete_batch_size: int = 100,
    ):
        super().__init__(delete_guess_limit, delete_batch_size)
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.embeddings = embeddings
        self._stores: TTLCache = TTLCache(maxsize=500, ttl=3600)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _dir_for(self, namespace: str) -> Path:
        safe = re.sub(r"[^a-zA-Z0-9_\-]", "_", namespace)
        return self.base_dir / safe

    def _load(self, namespace: str) -> Optional[FAISS]:
        if namespace in self._stores:
            return self._stores[namespace]

        index_dir = self._dir_for(namespace)
        if not ((index_dir / "index.faiss").exists() and (index_dir / "index.pkl").exists()):
            return None

        vs = FAISS.load_local(
            str(index_dir), self.embeddings, allow_dangerous_deserialization=True
        )
        self._stores[namespace] = vs
        log.info("Loaded FAISS namespace | namespace=%s | vectors=%d", namespace, vs.index.ntotal)
        return vs

    def _save(self, namespace: str, vs: FAISS) -> None:
        index_dir = self._dir_for(namespace)
        index_dir.mkdir(parents=True, exist_ok=True)
        vs.save_local(str(index_dir))
        self._stores[namespace] = vs

    def _upsert_sync(self, namespace: str, records: Sequence[VectorRecord]) -> int:
        ids = [r.id for r in records]
        text_embeddings = [(r.metadata.get("text", ""), list(r.vector)) for r in records]
        metadatas = [dict(r.metadata) for r in records]

        vs = self._load(namespace)
        if vs is None:
            vs = FAISS.from_embeddings(
                text_embeddings, self.embeddings, metadatas=metadatas, ids=ids
            )
        else:
            existing = set(vs.index_to_docstore_id.values()).intersection(ids)
            if existing:
                vs.delete(list(existing))
            vs.add_embeddings(text_embeddings, metadatas=metadatas, ids=ids)

        self._save(namespace, vs)
        return len(records)

    async def upsert(self, namespace: str, records: Sequence[VectorRecord]) -> int:
        if not records:
            return 0
        async with self._locks[namespace]:
            try:
                written = await run_sync(self._upsert_sync, namespace, records)
            except Exception as e:
                log.error("FAISS upsert failed | namespace=%s | error=%s", namespace, str(e))
                raise StorageError(f"Vector upsert failed: {e}", e) from e

        log.info("Vectors upserted | namespace=%s | count=%d", namespace, written)
        return written

    def _query_sync(
        self,
        namespace: str,
        vector: List[float],
        top_k: int,
        filter: Optional[Dict[str, Any]],
    ) -> List[RetrievedChunk]:
        vs = self._load(namespace)
        if vs is None or vs.index.ntotal == 0:
            return []

        # flat index: scan the whole namespace so the filter cannot starve top_k
        fetch_k = max(top_k, vs.index.ntotal)
        hits = vs.similarity_search_with_score_by_vector(
            list(vector),
            k=top_k,
            filter=_metadata_matcher(filter) if filter else None,
            fetch_k=fetch_k,
        )

        chunks = [
            RetrievedChunk(
                text=doc.page_content,
                score=1.0 / (1.0 + float(distance)),
                file_id=str(doc.metadata.get("file_id", "")),
                chunk_index=int(doc.metadata.get("chunk_index", 0)),
            )
            for doc, distance in hits
        ]
        chunks.sort(key=lambda c: c.score, reverse=True)
        return chunks[:top_k]

    async def query(
        self,
        namespace: str,
        vector: List[float],
        top_k: int = 5,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[RetrievedChunk]:
        try:
            # readers share the writers' lock: a search must not see a half-applied upsert
            async with self._locks[namespace]:
                return await run_sync(self._query_sync, namespace, vector, top_k, filter)
        except Exception as e:
            log.error("FAISS query failed | namespace=%s | error=%s", namespace, str(e))
            raise StorageError(f"Vector query failed: {e}", e) from e

    def _delete_sync(self, namespace: str, ids: Sequence[str]) -> int:
        vs = self._load(namespace)
        if vs is None:
            raise VectorNotFoundError(f"Namespace {namespace} not found")

        present = set(vs.index_to_docstore_id.values())
        to_delete = [i for i in ids if i in present]
        if not to_delete:
            raise VectorNotFoundError("None of the requested ids were found")

        vs.delete(to_delete)
        self._save(namespace, vs)
        return len(to_delete)

    async def delete_ids(self, namespace: str, ids: Sequence[str]) -> int:
        async with self._locks[namespace]:
            return await run_sync(self._delete_sync, namespace, ids)

    async def list_ids(self, namespace: str, prefix: str) -> List[str]:
        async with self._locks[namespace]:
            vs = await run_sync(self._load, namespace)
            if vs is None:
                return []
            return [i for i in vs.index_to_docstore_id.values() if i.startswith(prefix)]
