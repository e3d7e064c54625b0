from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rag_chat.logger import GLOBAL_LOGGER as log

from .models import Chat, Message, User, utcnow


class ChatRepository:
    """
    Repository providing CRUD operations for User + Chat + Message models.
    Every chat lookup is scoped to the owning user id.
    """

    async def get_or_create_user(
        self,
        db: AsyncSession,
        external_auth_id: str,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> User:
        out = await db.execute(
            select(User).where(User.external_auth_id == external_auth_id)
        )
        user = out.scalar_one_or_none()
        if user is not None:
            return user

        user = User(
            external_auth_id=external_auth_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            image_url=image_url,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        log.info("User created lazily | external_auth_id=%s", external_auth_id)
        return user

    async def create_chat(
        self, db: AsyncSession, user_id: str, title: str = "New Chat"
    ) -> Chat:
        chat = Chat(user_id=user_id, title=title)
        db.add(chat)
        await db.commit()
        await db.refresh(chat)
        log.info("New chat created | chat_id=%s | user_id=%s", chat.id, user_id)
        return chat

    async def list_chats(self, db: AsyncSession, user_id: str) -> list[Chat]:
        """
        List all chats of a user sorted by most recent activity first.
        """
        q = await db.execute(
            select(Chat).where(Chat.user_id == user_id).order_by(Chat.updated_at.desc())
        )
        chats = list(q.scalars().all())
        log.info("Listing chats | user_id=%s | count=%d", user_id, len(chats))
        return chats

    async def get_chat(
        self, db: AsyncSession, chat_id: str, user_id: str
    ) -> Optional[Chat]:
        out = await db.execute(
            select(Chat).where(Chat.id == chat_id, Chat.user_id == user_id)
        )
        return out.scalar_one_or_none()

    async def update_chat_title(
        self, db: AsyncSession, chat_id: str, user_id: str, title: str
    ) -> Optional[Chat]:
        chat = await self.get_chat(db, chat_id, user_id)
        if chat is None:
            return None

        chat.title = title
        chat.updated_at = utcnow()
        await db.commit()
        await db.refresh(chat)
        log.info("Chat title updated | chat_id=%s | title=%s", chat_id, title)
        return chat

    async def delete_chat(self, db: AsyncSession, chat_id: str, user_id: str) -> bool:
        chat = await self.get_chat(db, chat_id, user_id)
        if chat is None:
            return False

        # messages first, a chat never leaves orphans behind
        await db.execute(delete(Message).where(Message.chat_id == chat_id))
        await db.execute(delete(Chat).where(Chat.id == chat_id, Chat.user_id == user_id))
        await db.commit()
        log.info("Chat deleted with its messages | chat_id=%s", chat_id)
        return True

    async def add_message(
        self, db: AsyncSession, chat_id: str, role: str, content: str
    ) -> Message:
        message = Message(chat_id=chat_id, role=role, content=content)
        db.add(message)
        await db.execute(
            update(Chat).where(Chat.id == chat_id).values(updated_at=utcnow())
        )
        await db.commit()
        await db.refresh(message)

        log.info("Message persisted | chat_id=%s | role=%s", chat_id, role)
        return message

    async def get_chat_messages(self, db: AsyncSession, chat_id: str) -> list[Message]:
        """
        All messages of a chat in creation order, for replaying a conversation.
        """
        out = await db.execute(
            select(Message)
            .where(Message.chat_id == chat_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        return list(out.scalars().all())

    async def get_recent_messages(
        self, db: AsyncSession, chat_id: str, limit: int = 10
    ) -> list[Message]:
        out = await db.execute(
            select(Message)
            .where(Message.chat_id == chat_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        # restore chronological order
        rows = list(reversed(out.scalars().all()))
        log.info("Loaded recent history | chat_id=%s | count=%d", chat_id, len(rows))
        return rows

    async def count_messages(self, db: AsyncSession, chat_id: str) -> int:
        out = await db.execute(
            select(func.count()).select_from(Message).where(Message.chat_id == chat_id)
        )
        return int(out.scalar_one())
