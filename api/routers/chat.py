from fastapi import APIRouter, Depends

from api.dependencies import CurrentUser, get_chat_orchestrator, get_current_user
from api.schemas import ChatRequest, ChatResponse, MessageOut
from db.database import get_db
from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.src.document_chat.chat_orchestrator import ChatOrchestrator

router = APIRouter()


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(
    req: ChatRequest,
    user: CurrentUser = Depends(get_current_user),
    db=Depends(get_db),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
):
    """
    Main chat endpoint.

    Pipeline:
      1. Resolve or create the chat
      2. If any requested file is not indexed yet, answer with a wait message
      3. Memory + document retrieval, then generation
      4. Persist the user and assistant messages, title a new chat
    """
    log.info("Chat request received | user_id=%s | chat_id=%s", user.user_id, req.chat_id)

    result = await orchestrator.respond(
        db,
        user.user_id,
        [m.model_dump() for m in req.messages],
        chat_id=req.chat_id,
        file_ids=req.file_ids,
    )

    return ChatResponse(
        message=MessageOut(
            id=result.message.id,
            role=result.message.role,
            content=result.message.content,
            created_at=result.message.created_at,
        ),
        chat_id=result.chat_id,
        files_processing=True if result.files_processing else None,
    )
