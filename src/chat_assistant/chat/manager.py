"""Session manager for chat conversations."""

import asyncio
import itertools
import logging
import time
import weakref
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from chat_assistant.config import WRITE_QUEUE_SIZE
from chat_assistant.db import ChatStore, MessageRecord, SessionRecord

from .cache import SessionCache
from .identity import OwnerIdentity, owner_key

logger = logging.getLogger(__name__)

TEMP_PREFIX = "temp_"


def is_temporary(session_id: str) -> bool:
    """Temporary sessions live in memory only and never reach the store."""
    return session_id.startswith(TEMP_PREFIX)


@dataclass
class _PendingWrite:
    """A queued store write and the future its caller may wait on."""
    description: str
    run: Callable[[], Awaitable[Any]]
    on_error: Any = None
    done: asyncio.Future | None = field(default=None, repr=False)


class SessionManager:
    """
    Resolves, caches and persists chat sessions.

    - Anonymous owners get temporary ids; nothing is written for them
    - Reads go through a SessionCache and degrade to empty lists on failure
    - Resolution is serialized per owner, so an owner never gets two new sessions
    - Writes run one at a time from a bounded queue, in submission order,
      so writes for a session land in the order they were appended
    """

    def __init__(
        self,
        store: ChatStore,
        cache: SessionCache | None = None,
        queue_size: int = WRITE_QUEUE_SIZE,
    ):
        self.store = store
        self.cache = cache or SessionCache()
        self._queue: asyncio.Queue[_PendingWrite] = asyncio.Queue(maxsize=queue_size)
        self._worker: asyncio.Task | None = None
        self._temp_counter = itertools.count(1)
        # Dropped once no resolve holds or waits on them
        self._owner_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def new_temporary_id(self) -> str:
        return f"{TEMP_PREFIX}{int(time.time() * 1000)}_{next(self._temp_counter)}"

    async def resolve_session(self, owner: OwnerIdentity | None) -> str:
        """
        Get the session id to use for the owner's next chat.

        Anonymous owners always get a fresh temporary id. Signed-in owners
        reuse their most recently updated session, or get a new one. If the
        owner's sessions cannot be read, or the new session cannot be stored,
        a temporary id is returned instead.
        """
        owner_id = owner_key(owner)
        if owner_id is None:
            return self.new_temporary_id()

        # One resolve per owner at a time, so concurrent callers share one new session
        async with self._owner_lock(owner_id):
            try:
                sessions = await self._read_sessions(owner_id)
            except Exception:
                logger.exception("Failed to list sessions for %s", owner_id)
                return self.new_temporary_id()
            if sessions:
                return sessions[0].id

            try:
                session = await self.store.insert_session(owner_id)
            except Exception:
                logger.exception("Failed to create session for %s", owner_id)
                return self.new_temporary_id()
            finally:
                self.cache.invalidate_sessions(owner_id)

        logger.info("Created session %s for %s", session.id, owner_id)
        return session.id

    async def list_sessions(self, owner: OwnerIdentity | None) -> list[SessionRecord]:
        """Owner's sessions, most recently updated first."""
        owner_id = owner_key(owner)
        if owner_id is None:
            return []

        try:
            return await self._read_sessions(owner_id)
        except Exception:
            logger.exception("Failed to list sessions for %s", owner_id)
            return []

    async def list_messages(self, session_id: str) -> list[MessageRecord]:
        """Persisted messages for a session, oldest first."""
        if is_temporary(session_id):
            return []

        cached = self.cache.get_messages(session_id)
        if cached is not None:
            return list(cached)

        token = self.cache.messages_token(session_id)
        try:
            messages = await self.store.list_messages(session_id)
        except Exception:
            logger.exception("Failed to list messages for %s", session_id)
            return []

        self.cache.put_messages(session_id, messages, token)
        return messages

    async def append_message(
        self,
        session_id: str,
        owner: OwnerIdentity | None,
        content: str,
        is_user: bool,
        message_type: str = "text",
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """
        Queue a message for persistence and return without waiting for it.

        Failures are logged only; the caller has already shown the message.
        """
        if is_temporary(session_id):
            return

        owner_id = owner_key(owner)

        async def write() -> None:
            try:
                await self.store.insert_message(
                    session_id, owner_id, content, is_user, message_type, metadata
                )
                await self.store.touch_session(session_id)
            finally:
                self.cache.invalidate_messages(session_id)
                self.cache.invalidate_sessions(owner_id)

        await self._enqueue(_PendingWrite(f"append message to {session_id}", write))

    async def rename_session(self, session_id: str, title: str) -> bool:
        """Set a session's title. Returns False if nothing was renamed."""
        if is_temporary(session_id):
            return False

        async def write() -> bool:
            try:
                return await self.store.update_session_title(session_id, title)
            finally:
                # Owner is not known here
                self.cache.clear_sessions()

        return await self._submit(_PendingWrite(f"rename {session_id}", write, on_error=False))

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session and its messages. Returns False if nothing was deleted."""
        if is_temporary(session_id):
            return False

        async def write() -> bool:
            try:
                return await self.store.delete_session(session_id)
            finally:
                self.cache.invalidate_messages(session_id)
                self.cache.clear_sessions()

        return await self._submit(_PendingWrite(f"delete {session_id}", write, on_error=False))

    async def flush(self) -> None:
        """Wait until every queued write has run."""
        if self._worker is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Drain pending writes and stop the background worker."""
        await self.flush()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    def _owner_lock(self, owner_id: str) -> asyncio.Lock:
        lock = self._owner_locks.get(owner_id)
        if lock is None:
            lock = asyncio.Lock()
            self._owner_locks[owner_id] = lock
        return lock

    async def _read_sessions(self, owner_id: str) -> list[SessionRecord]:
        """Cached session list; store errors propagate."""
        cached = self.cache.get_sessions(owner_id)
        if cached is not None:
            return list(cached)

        token = self.cache.sessions_token(owner_id)
        sessions = await self.store.list_sessions(owner_id)
        self.cache.put_sessions(owner_id, sessions, token)
        return sessions

    async def _submit(self, write: _PendingWrite) -> Any:
        """Queue a write and wait for its result."""
        write.done = asyncio.get_running_loop().create_future()
        await self._enqueue(write)
        return await write.done

    async def _enqueue(self, write: _PendingWrite) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())
        await self._queue.put(write)

    async def _drain(self) -> None:
        while True:
            write = await self._queue.get()
            try:
                result = await write.run()
            except Exception:
                logger.exception("Store write failed: %s", write.description)
                result = write.on_error
            try:
                if write.done is not None and not write.done.done():
                    write.done.set_result(result)
            finally:
                self._queue.task_done()
