"""Async database engine and session factory."""

import os
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chat_assistant.config import PROJECT_ROOT

# Database path from environment or default to data/chat.db under the project root
_default_db_path = PROJECT_ROOT / "data" / "chat.db"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite+aiosqlite:///{_default_db_path}")

engine = create_async_engine(DATABASE_URL, echo=False)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
