import os
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from db.chat_repository import ChatRepository
from db.database import get_db
from db.file_repository import FileRepository
from orchestrator.orchestrator_manager import orchestrator_manager
from rag_chat.exception.custom_exception import Unauthorized
from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.src.document_chat.chat_orchestrator import ChatOrchestrator
from rag_chat.src.document_ingestion.data_ingestion import FileIngestionPipeline
from rag_chat.src.vector_store.vector_index import VectorIndex
from rag_chat.utils.config_loader import get_config
from rag_chat.utils.file_io import LocalBlobStorage


@dataclass
class CurrentUser:
    # the identity provider's subject, used as the owner id everywhere
    user_id: str
    email: Optional[str] = None


def get_jwt_token(authorization: Optional[str] = Header(None)) -> str:
    if not authorization:
        raise Unauthorized("Authorization header missing")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Invalid authentication scheme")
    return token.strip()


async def get_current_user(
    token: str = Depends(get_jwt_token),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    secret = os.getenv("AUTH_JWT_SECRET")
    if not secret:
        log.error("AUTH_JWT_SECRET is not configured")
        raise Unauthorized("Authentication is not configured")

    algorithm = get_config().get("auth", {}).get("algorithm", "HS256")
    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.PyJWTError as e:
        log.warning("JWT decode error | error=%s", str(e))
        raise Unauthorized("Could not validate credentials", e) from e

    subject = claims.get("sub")
    if not subject:
        raise Unauthorized("Token has no subject")

    # users are mirrored locally on first sight
    await ChatRepository().get_or_create_user(
        db,
        external_auth_id=subject,
        email=claims.get("email"),
        first_name=claims.get("given_name"),
        last_name=claims.get("family_name"),
        image_url=claims.get("picture"),
    )
    return CurrentUser(user_id=subject, email=claims.get("email"))


def get_chat_repository() -> ChatRepository:
    return ChatRepository()


def get_file_repository() -> FileRepository:
    return FileRepository()


def get_chat_orchestrator() -> ChatOrchestrator:
    return orchestrator_manager.chat_orchestrator


def get_ingestion_pipeline() -> FileIngestionPipeline:
    return orchestrator_manager.ingestion_pipeline


def get_vector_index() -> VectorIndex:
    return orchestrator_manager.vector_index


def get_blob_storage() -> LocalBlobStorage:
    return orchestrator_manager.blob_storage
