from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from langchain_core.embeddings import Embeddings
from langchain_text_splitters import RecursiveCharacterTextSplitter

from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.src.vector_store.vector_index import (
    VectorIndex,
    VectorRecord,
    chunk_id,
    namespace_for_user,
)

# paragraph, line, sentence, clause, word, then a hard character cut
CHUNK_SEPARATORS = ["\n\n", "\n", ".", "!", "?", ",", " ", ""]

# metadata keys owned by the chunk itself, extra metadata never overrides them
_RESERVED_KEYS = {"text", "file_id", "user_id", "chunk_index", "total_chunks"}


@dataclass
class StoredChunks:
    chunks_count: int
    namespace: str


class DocumentChunker:
    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200):
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=CHUNK_SEPARATORS,
        )

    def chunk(self, text: str) -> List[str]:
        if not text or not text.strip():
            return []
        return self.splitter.split_text(text)


class DocumentChunkStore:
    """
    Chunk -> embed -> upsert, as one operation.

    Chunk ids are `{file_id}-chunk-{i}` for i in [0, total_chunks), so a file's
    vectors can always be addressed again from its id and chunk count alone.
    """

    def __init__(self, chunker: DocumentChunker, embeddings: Embeddings, vector_index: VectorIndex):
        self.chunker = chunker
        self.embeddings = embeddings
        self.vector_index = vector_index

    async def embed(self, passages: List[str]) -> List[List[float]]:
        if not passages:
            return []
        vectors = await self.embeddings.aembed_documents(passages)
        if len(vectors) != len(passages):
            raise ValueError(
                f"Embedding model returned {len(vectors)} vectors for {len(passages)} passages"
            )
        return [list(v) for v in vectors]

    async def embed_query(self, query: str) -> List[float]:
        return list(await self.embeddings.aembed_query(query))

    async def store_document_chunks(
        self,
        text: str,
        file_id: str,
        user_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StoredChunks:
        namespace = namespace_for_user(user_id)
        passages = self.chunker.chunk(text)

        if not passages:
            log.info("No text to index | file_id=%s | namespace=%s", file_id, namespace)
            return StoredChunks(chunks_count=0, namespace=namespace)

        vectors = await self.embed(passages)

        # only scalar metadata survives into the index
        extra = {
            k: v
            for k, v in (metadata or {}).items()
            if k not in _RESERVED_KEYS and isinstance(v, (str, int, float, bool))
        }
        total = len(passages)
        records = [
            VectorRecord(
                id=chunk_id(file_id, i),
                vector=vector,
                metadata={
                    **extra,
                    "text": passage,
                    "file_id": file_id,
                    "user_id": user_id,
                    "chunk_index": i,
                    "total_chunks": total,
                },
            )
            for i, (passage, vector) in enumerate(zip(passages, vectors))
        ]

        await self.vector_index.upsert(namespace, records)
        log.info(
            "Document chunks stored | file_id=%s | namespace=%s | chunks=%d",
            file_id,
            namespace,
            total,
        )
        return StoredChunks(chunks_count=total, namespace=namespace)
