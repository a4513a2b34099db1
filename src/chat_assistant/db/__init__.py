"""Database module for the chat server."""

from .models import Base, Session, Message
from .session import engine, async_session, DATABASE_URL
from .store import ChatStore, SqlChatStore, SessionRecord, MessageRecord

__all__ = [
    "Base",
    "Session",
    "Message",
    "engine",
    "async_session",
    "DATABASE_URL",
    "ChatStore",
    "SqlChatStore",
    "SessionRecord",
    "MessageRecord",
]
