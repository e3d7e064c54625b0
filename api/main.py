from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routers import blobs, chat, chats, files, health
from db.database import dispose_db, init_db
from orchestrator.orchestrator_manager import orchestrator_manager
from rag_chat.exception.custom_exception import RagChatException
from rag_chat.logger import GLOBAL_LOGGER as log


# Use lifespan instead of deprecated on_event
@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("Application startup initiated")
    await init_db()
    yield
    await orchestrator_manager.aclose()
    await dispose_db()
    log.info("Application shutdown")


app = FastAPI(title="RAG Chat Backend", version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RagChatException)
async def rag_chat_exception_handler(request: Request, exc: RagChatException):
    if exc.status_code >= 500:
        log.error("Request failed | path=%s | error=%s", request.url.path, exc.describe())
    else:
        log.info(
            "Request rejected | path=%s | status=%d | error=%s",
            request.url.path,
            exc.status_code,
            str(exc),
        )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)}, headers=headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled error | path=%s | error=%s", request.url.path, str(exc))
    return JSONResponse(status_code=500, content={"detail": "internal_error"})


# Router Registration
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(chat.router, tags=["chat"])
app.include_router(chats.router, tags=["chats"])
app.include_router(files.router, tags=["files"])
app.include_router(blobs.router, tags=["blobs"])


@app.get("/")
async def root():
    return {"message": "Backend is running"}
