# orchestrator/orchestrator_manager.py
from __future__ import annotations

import os
from functools import cached_property

from db.database import AsyncSessionLocal
from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.src.document_chat.chat_orchestrator import ChatOrchestrator
from rag_chat.src.document_chat.retrieval import DocumentRetriever
from rag_chat.src.document_ingestion.chunking import DocumentChunker, DocumentChunkStore
from rag_chat.src.document_ingestion.data_ingestion import FileIngestionPipeline
from rag_chat.src.document_ingestion.text_extraction import TextExtractor
from rag_chat.src.memory.memory_client import MemoryClient
from rag_chat.src.vector_store.vector_index import FaissVectorIndex
from rag_chat.utils.config_loader import get_config
from rag_chat.utils.file_io import LocalBlobStorage
from rag_chat.utils.model_loader import ModelLoader


class OrchestratorManager:
    """
    Builds the long-lived collaborators once, on first use.

    Nothing touches the model providers until a route actually needs them, so the
    app starts (and /health answers) without API keys.
    """

    def __init__(self, config: dict | None = None):
        self._config = config

    @cached_property
    def config(self) -> dict:
        return self._config or get_config()

    @cached_property
    def model_loader(self) -> ModelLoader:
        return ModelLoader(self.config)

    @cached_property
    def embeddings(self):
        return self.model_loader.load_embeddings()

    @cached_property
    def llm(self):
        return self.model_loader.load_llm("chat")

    @cached_property
    def vector_index(self) -> FaissVectorIndex:
        vs_cfg = self.config.get("vector_store", {})
        log.info("Creating vector index | base_dir=%s", vs_cfg.get("base_dir", "faiss_index"))
        return FaissVectorIndex(
            base_dir=vs_cfg.get("base_dir", "faiss_index"),
            embeddings=self.embeddings,
            delete_guess_limit=vs_cfg.get("delete_guess_limit", 500),
            delete_batch_size=vs_cfg.get("delete_batch_size", 100),
        )

    @cached_property
    def chunk_store(self) -> DocumentChunkStore:
        chunking = self.config.get("chunking", {})
        chunker = DocumentChunker(
            chunk_size=chunking.get("chunk_size", 1000),
            chunk_overlap=chunking.get("chunk_overlap", 200),
        )
        return DocumentChunkStore(chunker, self.embeddings, self.vector_index)

    @cached_property
    def ingestion_pipeline(self) -> FileIngestionPipeline:
        ing_cfg = self.config.get("ingestion", {})
        return FileIngestionPipeline(
            extractor=TextExtractor(timeout=ing_cfg.get("fetch_timeout", 60)),
            chunk_store=self.chunk_store,
            session_factory=AsyncSessionLocal,
            preview_chars=ing_cfg.get("preview_chars", 5000),
        )

    @cached_property
    def memory_client(self) -> MemoryClient:
        mem_cfg = self.config.get("memory", {})
        return MemoryClient(
            base_url=mem_cfg.get("base_url", "https://api.mem0.ai"),
            api_key=os.getenv("MEM0_API_KEY"),
            fixed_user_id=os.getenv("MEM0_USER_ID") or None,
            timeout=mem_cfg.get("timeout", 15),
        )

    @cached_property
    def blob_storage(self) -> LocalBlobStorage:
        st_cfg = self.config.get("storage", {})
        return LocalBlobStorage(
            base_dir=st_cfg.get("base_dir", "uploads"),
            public_base_url=st_cfg.get("public_base_url", "http://localhost:8000/blobs"),
        )

    @cached_property
    def chat_orchestrator(self) -> ChatOrchestrator:
        retriever = DocumentRetriever(
            self.chunk_store,
            self.vector_index,
            top_k=self.config.get("retriever", {}).get("top_k", 5),
        )
        log.info("Creating chat orchestrator")
        return ChatOrchestrator(
            llm=self.llm,
            memory=self.memory_client,
            retriever=retriever,
            degrade_on_memory_error=self.config.get("memory", {}).get("degrade_on_error", True),
        )

    async def aclose(self) -> None:
        # only close what was actually built
        if "memory_client" in self.__dict__:
            await self.memory_client.aclose()


orchestrator_manager = OrchestratorManager()
