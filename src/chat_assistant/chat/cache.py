"""Read-through caches for session and message lists."""

from chat_assistant.db import MessageRecord, SessionRecord

# (epoch, per-key generation) observed before a store read
CacheToken = tuple[int, int]


class SessionCache:
    """
    Session-list-by-owner and message-list-by-session caches.

    No TTL. Entries are stored as tuples and only ever replaced or
    deleted, so a reader holding an old entry never sees it change.

    Every invalidation bumps a generation counter. Readers take a token
    before going to the store and pass it to put_*; a put whose key was
    invalidated in the meantime is dropped instead of caching stale data.
    """

    def __init__(self):
        self._sessions: dict[str, tuple[SessionRecord, ...]] = {}
        self._messages: dict[str, tuple[MessageRecord, ...]] = {}
        self._session_gen: dict[str, int] = {}
        self._message_gen: dict[str, int] = {}
        self._sessions_epoch = 0
        self._messages_epoch = 0

    # --- Sessions ---

    def get_sessions(self, owner_id: str) -> tuple[SessionRecord, ...] | None:
        return self._sessions.get(owner_id)

    def sessions_token(self, owner_id: str) -> CacheToken:
        return (self._sessions_epoch, self._session_gen.get(owner_id, 0))

    def put_sessions(self, owner_id: str, sessions: list[SessionRecord], token: CacheToken) -> bool:
        """Cache a store read. Returns False if the key was invalidated since the token."""
        if token != self.sessions_token(owner_id):
            return False
        self._sessions[owner_id] = tuple(sessions)
        return True

    def invalidate_sessions(self, owner_id: str | None) -> None:
        if owner_id is not None:
            self._session_gen[owner_id] = self._session_gen.get(owner_id, 0) + 1
            self._sessions.pop(owner_id, None)

    def clear_sessions(self) -> None:
        self._sessions_epoch += 1
        self._sessions = {}

    # --- Messages ---

    def get_messages(self, session_id: str) -> tuple[MessageRecord, ...] | None:
        return self._messages.get(session_id)

    def messages_token(self, session_id: str) -> CacheToken:
        return (self._messages_epoch, self._message_gen.get(session_id, 0))

    def put_messages(self, session_id: str, messages: list[MessageRecord], token: CacheToken) -> bool:
        """Cache a store read. Returns False if the key was invalidated since the token."""
        if token != self.messages_token(session_id):
            return False
        self._messages[session_id] = tuple(messages)
        return True

    def invalidate_messages(self, session_id: str) -> None:
        self._message_gen[session_id] = self._message_gen.get(session_id, 0) + 1
        self._messages.pop(session_id, None)

    def clear(self) -> None:
        self._sessions_epoch += 1
        self._messages_epoch += 1
        self._sessions = {}
        self._messages = {}
