from typing import List, Sequence

from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.src.document_ingestion.chunking import DocumentChunkStore
from rag_chat.src.vector_store.vector_index import (
    RetrievedChunk,
    VectorIndex,
    namespace_for_user,
)


class DocumentRetriever:
    """
    Similarity search over a user's namespace, restricted to a set of file ids.

    The query is embedded with the same model the chunks were embedded with.
    """

    def __init__(self, chunk_store: DocumentChunkStore, vector_index: VectorIndex, top_k: int = 5):
        self.chunk_store = chunk_store
        self.vector_index = vector_index
        self.top_k = top_k

    async def retrieve(
        self, query: str, user_id: str, file_ids: Sequence[str], top_k: int | None = None
    ) -> List[RetrievedChunk]:
        """
        Args:
            query: the active user message
            user_id: owner of the namespace to search
            file_ids: only chunks of these files are eligible

        Returns:
            Chunks ordered by descending similarity, at most `top_k`
        """
        ids = [f for f in file_ids if f]
        if not ids:
            return []

        k = top_k or self.top_k
        vector = await self.chunk_store.embed_query(query)
        chunks = await self.vector_index.query(
            namespace_for_user(user_id), vector, top_k=k, filter={"file_id": ids}
        )
        log.info(
            "Document chunks retrieved | user_id=%s | files=%d | chunks=%d",
            user_id,
            len(ids),
            len(chunks),
        )
        return chunks


def format_document_context(chunks: Sequence[RetrievedChunk]) -> str:
    if not chunks:
        return ""
    return "\n\nRelevant document context:\n" + "\n\n".join(
        f"[Document {idx}]: {chunk.text}" for idx, chunk in enumerate(chunks, start=1)
    )
