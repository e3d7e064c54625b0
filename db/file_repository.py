from typing import Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rag_chat.exception.custom_exception import InvalidStatusTransition, NotFound
from rag_chat.logger import GLOBAL_LOGGER as log

from .models import File, FileStatus, allowed_sources, utcnow


class FileRepository:
    """
    Repository for uploaded File records.

    Status changes go through `transition_status`, a compare-and-swap on the
    current status, so two writers can never both move a file into `processing`.
    """

    async def create_file(self, db: AsyncSession, **fields) -> File:
        record = File(**fields)
        db.add(record)
        await db.commit()
        await db.refresh(record)
        log.info(
            "File record created | file_id=%s | status=%s | name=%s",
            record.id,
            record.status,
            record.file_name,
        )
        return record

    async def get_file(
        self, db: AsyncSession, file_id: str, user_id: Optional[str] = None
    ) -> Optional[File]:
        stmt = select(File).where(File.id == file_id)
        if user_id is not None:
            stmt = stmt.where(File.user_id == user_id)
        out = await db.execute(stmt)
        return out.scalar_one_or_none()

    async def get_files_by_ids(
        self, db: AsyncSession, file_ids: Iterable[str], user_id: str
    ) -> list[File]:
        ids = list(file_ids)
        if not ids:
            return []
        out = await db.execute(
            select(File).where(File.id.in_(ids), File.user_id == user_id)
        )
        return list(out.scalars().all())

    async def list_files(
        self, db: AsyncSession, user_id: str, chat_id: Optional[str] = None
    ) -> list[File]:
        stmt = select(File).where(File.user_id == user_id)
        if chat_id is not None:
            stmt = stmt.where(File.chat_id == chat_id)
        out = await db.execute(stmt.order_by(File.created_at.desc()))
        files = list(out.scalars().all())

        log.info(
            "Listed uploaded files | user_id=%s | chat_id=%s | count=%d",
            user_id,
            chat_id,
            len(files),
        )
        return files

    async def transition_status(
        self, db: AsyncSession, file_id: str, target: FileStatus, **values
    ) -> None:
        sources = [s.value for s in allowed_sources(target)]
        result = await db.execute(
            update(File)
            .where(File.id == file_id, File.status.in_(sources))
            .values(status=target.value, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        if result.rowcount != 1:
            current = await db.execute(select(File.status).where(File.id == file_id))
            status = current.scalar_one_or_none()
            if status is None:
                raise NotFound(f"File {file_id} not found")
            raise InvalidStatusTransition(
                f"File {file_id} cannot move from '{status}' to '{target.value}'"
            )

        log.info("File status updated | file_id=%s | status=%s", file_id, target.value)

    async def delete_file(self, db: AsyncSession, file_id: str) -> None:
        await db.execute(delete(File).where(File.id == file_id))
        await db.commit()
        log.info("File record deleted | file_id=%s", file_id)
