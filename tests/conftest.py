"""
Test fixtures for the chat server.
"""

import asyncio
import os

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Configure before importing the app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ.pop("COMPLETION_URL", None)

from chat_assistant.main import app
from chat_assistant.chat import (
    ChatService,
    CompletionBackend,
    CompletionError,
    SessionManager,
    SpeechInterrupted,
    SpeechOutput,
)
from chat_assistant.db import ChatStore, SqlChatStore
from chat_assistant.db.models import Base


class FakeCompletionBackend(CompletionBackend):
    """Records calls; can fail, or hold replies until a gate opens."""

    def __init__(self, reply: str = "Sure, here you go."):
        self.reply = reply
        self.fail = False
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[str, list]] = []
        self.started = asyncio.Event()

    async def complete(self, message, attachments=()):
        self.calls.append((message, list(attachments)))
        self.started.set()
        await asyncio.sleep(0)  # Always suspend, like a real network call
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise CompletionError("backend down")
        return self.reply


class SpyStore(ChatStore):
    """Wraps a real store, recording every call and optionally failing.

    With read_gate set, reads fetch their result and then wait on the gate
    before returning it, so writes can land while a stale read is pending.
    """

    def __init__(self, inner: ChatStore):
        self.inner = inner
        self.calls: list[str] = []
        self.fail_reads = False
        self.fail_writes = False
        self.read_gate: asyncio.Event | None = None
        self.read_started = asyncio.Event()

    async def _call(self, name, *args, write=False):
        self.calls.append(name)
        if write and self.fail_writes:
            raise RuntimeError(f"{name} failed")
        if not write and self.fail_reads:
            raise RuntimeError(f"{name} failed")
        result = await getattr(self.inner, name)(*args)
        if not write and self.read_gate is not None:
            self.read_started.set()
            await self.read_gate.wait()
        return result

    async def insert_session(self, owner_id, title="New Chat"):
        return await self._call("insert_session", owner_id, title, write=True)

    async def list_sessions(self, owner_id):
        return await self._call("list_sessions", owner_id)

    async def insert_message(self, session_id, owner_id, content, is_user, message_type="text", metadata=None):
        return await self._call(
            "insert_message", session_id, owner_id, content, is_user, message_type, metadata, write=True
        )

    async def list_messages(self, session_id):
        return await self._call("list_messages", session_id)

    async def touch_session(self, session_id):
        return await self._call("touch_session", session_id, write=True)

    async def update_session_title(self, session_id, title):
        return await self._call("update_session_title", session_id, title, write=True)

    async def delete_session(self, session_id):
        return await self._call("delete_session", session_id, write=True)


class RecordingSpeech(SpeechOutput):
    """Speech output that records calls; cancel reports an interruption."""

    def __init__(self):
        self.spoken: list[str] = []
        self.cancels = 0

    async def speak(self, text):
        self.spoken.append(text)

    async def cancel(self):
        self.cancels += 1
        raise SpeechInterrupted()


def make_token(sub: str, email: str | None = None, secret: str = "test-secret") -> str:
    """Bearer token as the identity provider would issue it."""
    claims = {"sub": sub}
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return SpyStore(SqlChatStore(session_factory))


@pytest.fixture
async def manager(store):
    manager = SessionManager(store)
    yield manager
    await manager.close()


@pytest.fixture
def backend():
    return FakeCompletionBackend()


@pytest.fixture
def chat(manager, backend):
    return ChatService(manager, backend)


@pytest.fixture
async def client(manager, backend, chat):
    """Async HTTP client wired to the test services."""
    app.state.session_manager = manager
    app.state.completion_backend = backend
    app.state.chat_service = chat
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
