# tests/conftest.py
import os

# must be set before db.database builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import time

import jwt
import pytest
import pytest_asyncio
from langchain_core.embeddings import DeterministicFakeEmbedding
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from db.file_repository import FileRepository
from db.models import Base, FileStatus
from rag_chat.src.document_ingestion.chunking import DocumentChunker, DocumentChunkStore
from rag_chat.src.vector_store.vector_index import FaissVectorIndex

JWT_SECRET = "test-secret"


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine, expire_on_commit=False, class_=AsyncSession, autoflush=False
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def embeddings():
    return DeterministicFakeEmbedding(size=32)


@pytest.fixture
def vector_index(tmp_path, embeddings):
    return FaissVectorIndex(
        tmp_path / "faiss_index",
        embeddings,
        delete_guess_limit=50,
        delete_batch_size=10,
    )


@pytest.fixture
def chunk_store(embeddings, vector_index):
    chunker = DocumentChunker(chunk_size=200, chunk_overlap=20)
    return DocumentChunkStore(chunker, embeddings, vector_index)


@pytest.fixture
def make_file(db):
    """Insert a File row directly, in any status."""

    async def _make(
        user_id="user_123",
        chat_id=None,
        file_name="notes.txt",
        file_type="text/plain",
        status=FileStatus.UPLOADING,
        **extra,
    ):
        return await FileRepository().create_file(
            db,
            user_id=user_id,
            chat_id=chat_id,
            file_name=file_name,
            file_type=file_type,
            file_size=42,
            storage_url=f"http://files.test/{file_name}",
            storage_public_id=f"{user_id}/{file_name}",
            status=status.value,
            **extra,
        )

    return _make


def make_token(sub="user_123", secret=JWT_SECRET, **claims):
    payload = {
        "sub": sub,
        "iat": int(time.time()),
        "exp": int(time.time()) + 3600,
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token(email='ann@example.com')}"}
