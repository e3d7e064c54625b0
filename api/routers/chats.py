from typing import List

from fastapi import APIRouter, Depends

from api.dependencies import CurrentUser, get_chat_repository, get_current_user
from api.schemas import ChatSummary, CreateChatRequest, MessageOut, UpdateChatRequest
from db.chat_repository import ChatRepository
from db.database import get_db
from rag_chat.exception.custom_exception import InvalidInput, NotFound
from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.utils.chat_utils import DEFAULT_CHAT_TITLE, validate_chat_title

router = APIRouter()


@router.get("/chats", response_model=List[ChatSummary])
async def list_chats(
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
    repo: ChatRepository = Depends(get_chat_repository),
):
    """
    List the caller's chats, most recently active first.
    """
    return await repo.list_chats(db, user.user_id)


@router.post("/chats", response_model=ChatSummary)
async def create_chat(
    req: CreateChatRequest,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
    repo: ChatRepository = Depends(get_chat_repository),
):
    title = validate_chat_title(req.title) if req.title else None
    chat = await repo.create_chat(db, user.user_id, title or DEFAULT_CHAT_TITLE)
    log.info("Created new chat | chat_id=%s", chat.id)
    return chat


@router.get("/chats/{chat_id}", response_model=ChatSummary)
async def get_chat(
    chat_id: str,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
    repo: ChatRepository = Depends(get_chat_repository),
):
    chat = await repo.get_chat(db, chat_id, user.user_id)
    if chat is None:
        raise NotFound("Chat not found")
    return chat


@router.patch("/chats/{chat_id}", response_model=ChatSummary)
async def rename_chat(
    chat_id: str,
    req: UpdateChatRequest,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
    repo: ChatRepository = Depends(get_chat_repository),
):
    title = validate_chat_title(req.title or "")
    if title is None:
        raise InvalidInput("Title is required")

    chat = await repo.update_chat_title(db, chat_id, user.user_id, title)
    if chat is None:
        raise NotFound("Chat not found")
    return chat


@router.delete("/chats/{chat_id}")
async def delete_chat(
    chat_id: str,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
    repo: ChatRepository = Depends(get_chat_repository),
):
    if not await repo.delete_chat(db, chat_id, user.user_id):
        raise NotFound("Chat not found")
    return {"success": True}


@router.get("/chats/{chat_id}/messages", response_model=List[MessageOut])
async def get_messages(
    chat_id: str,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
    repo: ChatRepository = Depends(get_chat_repository),
):
    if await repo.get_chat(db, chat_id, user.user_id) is None:
        raise NotFound("Chat not found")

    messages = await repo.get_chat_messages(db, chat_id)
    return [
        MessageOut(id=str(m.id), role=m.role, content=m.content, created_at=m.created_at)
        for m in messages
    ]
