"""Persistence for chat sessions and messages."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import Message, Session, utcnow


class SessionRecord(BaseModel):
    id: str
    owner_id: str | None
    title: str
    created_at: datetime
    updated_at: datetime

    class Config:
        frozen = True


class MessageRecord(BaseModel):
    id: str
    session_id: str
    owner_id: str | None = None
    content: str
    is_user: bool
    message_type: str = "text"
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        frozen = True


def _session_record(row: Session) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _message_record(row: Message) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        session_id=row.session_id,
        owner_id=row.owner_id,
        content=row.content,
        is_user=row.is_user,
        message_type=row.message_type,
        metadata=row.meta or {},
        created_at=row.created_at,
    )


class ChatStore(ABC):
    """
    Backing store for sessions and messages.

    Implementations raise on failure; callers decide how to degrade.
    Timestamps are assigned by the store.
    """

    @abstractmethod
    async def insert_session(self, owner_id: str, title: str = "New Chat") -> SessionRecord:
        pass

    @abstractmethod
    async def list_sessions(self, owner_id: str) -> list[SessionRecord]:
        """Sessions for an owner, most recently updated first."""
        pass

    @abstractmethod
    async def insert_message(
        self,
        session_id: str,
        owner_id: str | None,
        content: str,
        is_user: bool,
        message_type: str = "text",
        metadata: dict[str, Any] | None = None,
    ) -> MessageRecord:
        pass

    @abstractmethod
    async def list_messages(self, session_id: str) -> list[MessageRecord]:
        """Messages in a session, oldest first."""
        pass

    @abstractmethod
    async def touch_session(self, session_id: str) -> None:
        """Bump a session's updated_at."""
        pass

    @abstractmethod
    async def update_session_title(self, session_id: str, title: str) -> bool:
        """Returns False if the session does not exist."""
        pass

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        """Delete a session and its messages. Returns False if it did not exist."""
        pass


class SqlChatStore(ChatStore):
    """ChatStore over an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def insert_session(self, owner_id: str, title: str = "New Chat") -> SessionRecord:
        async with self._session_factory() as db:
            session = Session(id=str(uuid4()), owner_id=owner_id, title=title)
            db.add(session)
            await db.commit()
            await db.refresh(session)
            return _session_record(session)

    async def list_sessions(self, owner_id: str) -> list[SessionRecord]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Session)
                .where(Session.owner_id == owner_id)
                .order_by(Session.updated_at.desc())
            )
            return [_session_record(row) for row in result.scalars().all()]

    async def insert_message(
        self,
        session_id: str,
        owner_id: str | None,
        content: str,
        is_user: bool,
        message_type: str = "text",
        metadata: dict[str, Any] | None = None,
    ) -> MessageRecord:
        async with self._session_factory() as db:
            message = Message(
                id=str(uuid4()),
                session_id=session_id,
                owner_id=owner_id,
                content=content,
                is_user=is_user,
                message_type=message_type,
                meta=metadata or {},
            )
            db.add(message)
            await db.commit()
            await db.refresh(message)
            return _message_record(message)

    async def list_messages(self, session_id: str) -> list[MessageRecord]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Message)
                .where(Message.session_id == session_id)
                .order_by(Message.created_at.asc())
            )
            return [_message_record(row) for row in result.scalars().all()]

    async def touch_session(self, session_id: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(Session).where(Session.id == session_id).values(updated_at=utcnow())
            )
            await db.commit()

    async def update_session_title(self, session_id: str, title: str) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                update(Session).where(Session.id == session_id).values(title=title)
            )
            await db.commit()
            return result.rowcount > 0

    async def delete_session(self, session_id: str) -> bool:
        async with self._session_factory() as db:
            # SQLite does not enforce ON DELETE CASCADE without a pragma
            await db.execute(delete(Message).where(Message.session_id == session_id))
            result = await db.execute(delete(Session).where(Session.id == session_id))
            await db.commit()
            return result.rowcount > 0
