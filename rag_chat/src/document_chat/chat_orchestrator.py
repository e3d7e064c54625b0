from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import List, Mapping, Optional, Sequence

from langchain_core.language_models import BaseChatModel
from sqlalchemy.ext.asyncio import AsyncSession

from db.chat_repository import ChatRepository
from db.file_repository import FileRepository
from db.models import Chat, File, FileStatus, utcnow
from rag_chat.exception.custom_exception import (
    GenerationError,
    InvalidInput,
    MemoryStoreError,
    NotFound,
)
from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.prompts.prompt_library import PROMPT_REGISTRY
from rag_chat.src.document_chat.retrieval import DocumentRetriever, format_document_context
from rag_chat.src.memory.memory_client import MemoryClient
from rag_chat.src.vector_store.vector_index import RetrievedChunk
from rag_chat.utils.chat_utils import generate_chat_title

# files in these states have no indexed chunks yet
PENDING_STATUSES = {
    FileStatus.UPLOADING.value,
    FileStatus.UPLOADED.value,
    FileStatus.PROCESSING.value,
}


@dataclass
class TurnMessage:
    id: str
    role: str
    content: str
    created_at: datetime


@dataclass
class ChatTurnResult:
    message: TurnMessage
    chat_id: str
    files_processing: bool = False


class ChatOrchestrator:
    """
    Runs one chat turn:
      1. Resolve (or create) the chat
      2. Check the attached files are ready, otherwise answer with a wait message
      3. Pull relevant memories and document chunks
      4. Build the augmented prompt and call the LLM
      5. Store the memory pair, persist user + assistant messages, title new chats
    """

    def __init__(
        self,
        llm: BaseChatModel,
        memory: MemoryClient,
        retriever: DocumentRetriever,
        chat_repository: Optional[ChatRepository] = None,
        file_repository: Optional[FileRepository] = None,
        degrade_on_memory_error: bool = True,
    ):
        self.llm = llm
        self.memory = memory
        self.retriever = retriever
        self.chats = chat_repository or ChatRepository()
        self.files = file_repository or FileRepository()
        self.degrade_on_memory_error = degrade_on_memory_error
        self.prompt = PROMPT_REGISTRY["augmented_chat"]

    async def respond(
        self,
        db: AsyncSession,
        user_id: str,
        messages: Sequence[Mapping[str, str]],
        chat_id: Optional[str] = None,
        file_ids: Optional[Sequence[str]] = None,
    ) -> ChatTurnResult:
        if not messages:
            raise InvalidInput("messages are required")

        query = (messages[-1].get("content") or "").strip()
        if not query:
            raise InvalidInput("The last message has no content")

        chat = await self._resolve_chat(db, user_id, chat_id)
        is_first_turn = await self.chats.count_messages(db, chat.id) == 0

        log.info(
            "Chat turn started | chat_id=%s | user_id=%s | file_ids=%s",
            chat.id,
            user_id,
            list(file_ids or []),
        )

        requested_ids = [f for f in (file_ids or []) if f]
        if requested_ids:
            files = await self.files.get_files_by_ids(db, requested_ids, user_id)
            pending = [f for f in files if f.status in PENDING_STATUSES]
            if pending:
                return self._wait_for_files(chat.id, pending)
            files_block = (
                "\n\nFiles available in this conversation: "
                + ", ".join(f.file_name for f in files)
                if files
                else ""
            )
        else:
            files = await self.files.list_files(db, user_id, chat_id=chat.id)
            files_block = (
                "\n\nFiles in this conversation: "
                + ", ".join(f"{f.file_name} ({f.status})" for f in files)
                if files
                else ""
            )

        completed_ids = [f.id for f in files if f.status == FileStatus.COMPLETED.value]

        memories = await self._relevant_memory(query, user_id)
        chunks = await self.retriever.retrieve(query, user_id, completed_ids) if completed_ids else []

        prompt = self.build_prompt(query, memories, chunks, files_block)
        answer = await self._generate(prompt, chat.id)

        await self._remember(query, answer, user_id)

        # user message strictly before the assistant reply
        await self.chats.add_message(db, chat.id, "user", query)
        reply = await self.chats.add_message(db, chat.id, "assistant", answer)

        if is_first_turn:
            await self.chats.update_chat_title(db, chat.id, user_id, generate_chat_title(query))

        log.info("Chat turn completed | chat_id=%s | chunks_used=%d", chat.id, len(chunks))
        return ChatTurnResult(
            message=TurnMessage(
                id=str(reply.id),
                role="assistant",
                content=answer,
                created_at=reply.created_at,
            ),
            chat_id=chat.id,
        )

    def build_prompt(
        self,
        query: str,
        memories: List[str],
        chunks: Sequence[RetrievedChunk],
        files_block: str = "",
    ) -> str:
        memory_block = (
            "Relevant past memories:\n" + "\n".join(memories) + "\n" if memories else ""
        )
        return self.prompt.format(
            memory_block=memory_block,
            document_block=format_document_context(chunks),
            files_block=files_block,
            query=query,
        ).strip()

    async def _resolve_chat(self, db: AsyncSession, user_id: str, chat_id: Optional[str]) -> Chat:
        if not chat_id:
            return await self.chats.create_chat(db, user_id, "New Chat")

        chat = await self.chats.get_chat(db, chat_id, user_id)
        if chat is None:
            raise NotFound("Chat not found")
        return chat

    def _wait_for_files(self, chat_id: str, pending: List[File]) -> ChatTurnResult:
        names = ", ".join(f.file_name for f in pending)
        log.info("Files still processing, skipping generation | chat_id=%s | files=%s", chat_id, names)
        return ChatTurnResult(
            message=TurnMessage(
                id=f"msg-{int(time.time() * 1000)}",
                role="assistant",
                content=(
                    f"Please wait, the following files are still being processed: {names}. "
                    "Please try again in a moment."
                ),
                created_at=utcnow(),
            ),
            chat_id=chat_id,
            files_processing=True,
        )

    async def _relevant_memory(self, query: str, user_id: str) -> List[str]:
        try:
            return await self.memory.search(query, user_id)
        except MemoryStoreError as e:
            if not self.degrade_on_memory_error:
                raise
            log.warning("Memory lookup failed, answering without memory | error=%s", str(e))
            return []

    async def _generate(self, prompt: str, chat_id: str) -> str:
        log.info("Invoking chat model | chat_id=%s | prompt_chars=%d", chat_id, len(prompt))
        try:
            result = await self.llm.ainvoke(prompt)
        except Exception as e:
            log.error("Generation failed | chat_id=%s | error=%s", chat_id, str(e))
            raise GenerationError(f"Generation failed: {e}", e) from e

        content = getattr(result, "content", result)
        if not isinstance(content, str):
            content = str(content)
        return content

    async def _remember(self, query: str, answer: str, user_id: str) -> None:
        # the reply is already produced, a memory write failure must not undo it
        try:
            await self.memory.add(
                [
                    {"role": "user", "content": query},
                    {"role": "assistant", "content": answer},
                ],
                user_id,
            )
        except Exception as e:
            log.warning("Failed to add memory | error=%s", str(e))
