"""
Tests for session resolution, caching and ordered persistence.
"""

import asyncio

import pytest

from chat_assistant.chat import ANONYMOUS, LocalAccount, ProvidedAccount, SessionCache, SessionManager
from chat_assistant.chat.manager import is_temporary

USER = ProvidedAccount(id="u1", email="u1@example.com")


@pytest.mark.asyncio
async def test_anonymous_gets_temporary_id_without_store(manager, store):
    """Anonymous owners never touch the store."""
    first = await manager.resolve_session(ANONYMOUS)
    second = await manager.resolve_session(None)

    assert is_temporary(first)
    assert is_temporary(second)
    assert first != second
    assert store.calls == []


@pytest.mark.asyncio
async def test_resolve_creates_single_session(manager, store):
    """An owner with no sessions gets exactly one new session."""
    session_id = await manager.resolve_session(USER)

    sessions = await manager.list_sessions(USER)
    assert [s.id for s in sessions] == [session_id]
    assert sessions[0].owner_id == "u1"
    assert sessions[0].title == "New Chat"
    assert store.calls.count("insert_session") == 1


@pytest.mark.asyncio
async def test_resolve_reuses_most_recent_session(manager, store):
    """Existing owners get their most recently updated session."""
    older = await store.insert_session("u1", "Older")
    newer = await store.insert_session("u1", "Newer")
    await manager.append_message(older.id, USER, "bump", is_user=True)
    await manager.flush()

    assert await manager.resolve_session(USER) == older.id
    sessions = await manager.list_sessions(USER)
    assert [s.id for s in sessions] == [older.id, newer.id]


@pytest.mark.asyncio
async def test_local_accounts_are_namespaced(manager):
    """Local usernames never collide with provider ids."""
    local_id = await manager.resolve_session(LocalAccount("u1"))
    provided_id = await manager.resolve_session(USER)

    assert local_id != provided_id
    sessions = await manager.list_sessions(LocalAccount("u1"))
    assert sessions[0].owner_id == "local:u1"


@pytest.mark.asyncio
async def test_list_sessions_is_cached(manager, store):
    """Repeated reads are served from the cache."""
    await manager.resolve_session(USER)
    store.calls.clear()

    await manager.list_sessions(USER)
    await manager.list_sessions(USER)

    assert store.calls.count("list_sessions") == 1


@pytest.mark.asyncio
async def test_temporary_session_messages_never_reach_store(manager, store):
    """Appending to a temporary session is a no-op for the store."""
    session_id = await manager.resolve_session(ANONYMOUS)

    await manager.append_message(session_id, ANONYMOUS, "hi", is_user=True)
    await manager.flush()

    assert await manager.list_messages(session_id) == []
    assert store.calls == []


@pytest.mark.asyncio
async def test_append_invalidates_message_cache(manager):
    """A read after a write reflects the write."""
    session_id = await manager.resolve_session(USER)
    assert await manager.list_messages(session_id) == []

    await manager.append_message(session_id, USER, "hello", is_user=True)
    await manager.flush()

    messages = await manager.list_messages(session_id)
    assert [m.content for m in messages] == ["hello"]
    assert messages[0].is_user is True


@pytest.mark.asyncio
async def test_append_bumps_session_updated_at(manager):
    session_id = await manager.resolve_session(USER)
    before = (await manager.list_sessions(USER))[0].updated_at

    await manager.append_message(session_id, USER, "hello", is_user=True)
    await manager.flush()

    after = (await manager.list_sessions(USER))[0].updated_at
    assert after > before


@pytest.mark.asyncio
async def test_writes_keep_submission_order(manager):
    """Messages land in the order they were appended."""
    session_id = await manager.resolve_session(USER)

    for i in range(5):
        await manager.append_message(session_id, USER, f"m{i}", is_user=i % 2 == 0)
    await manager.flush()

    messages = await manager.list_messages(session_id)
    assert [m.content for m in messages] == ["m0", "m1", "m2", "m3", "m4"]


@pytest.mark.asyncio
async def test_append_stores_type_and_metadata(manager):
    session_id = await manager.resolve_session(USER)

    await manager.append_message(
        session_id, USER, "print(1)", is_user=False, message_type="code", metadata={"lang": "py"}
    )
    await manager.flush()

    message = (await manager.list_messages(session_id))[0]
    assert message.message_type == "code"
    assert message.metadata == {"lang": "py"}


@pytest.mark.asyncio
async def test_write_failure_is_logged_not_raised(manager, store, caplog):
    session_id = await manager.resolve_session(USER)
    store.fail_writes = True

    await manager.append_message(session_id, USER, "lost", is_user=True)
    await manager.flush()

    assert "Store write failed" in caplog.text
    store.fail_writes = False
    assert await manager.list_messages(session_id) == []


@pytest.mark.asyncio
async def test_read_failure_returns_empty(manager, store):
    store.fail_reads = True

    assert await manager.list_sessions(USER) == []
    assert await manager.list_messages("some-session") == []


@pytest.mark.asyncio
async def test_read_failure_is_not_cached(manager, store):
    session_id = await manager.resolve_session(USER)
    manager.cache.clear()
    store.fail_reads = True
    assert await manager.list_sessions(USER) == []

    store.fail_reads = False
    assert [s.id for s in await manager.list_sessions(USER)] == [session_id]


@pytest.mark.asyncio
async def test_create_failure_falls_back_to_temporary(manager, store):
    store.fail_writes = True

    session_id = await manager.resolve_session(USER)

    assert is_temporary(session_id)


@pytest.mark.asyncio
async def test_resolve_read_failure_does_not_create(manager, store):
    """An unreadable store is not mistaken for an owner with no sessions."""
    store.fail_reads = True

    session_id = await manager.resolve_session(USER)

    assert is_temporary(session_id)
    assert "insert_session" not in store.calls


@pytest.mark.asyncio
async def test_concurrent_resolve_creates_one_session(manager, store):
    """Two first-time resolves for one owner share a single new session."""
    first, second = await asyncio.gather(
        manager.resolve_session(USER),
        manager.resolve_session(USER),
    )

    assert first == second
    assert not is_temporary(first)
    assert store.calls.count("insert_session") == 1
    assert len(await store.list_sessions("u1")) == 1


@pytest.mark.asyncio
async def test_write_during_message_read_is_not_hidden(manager, store):
    """A read that started before a write must not cache its older result."""
    session_id = await manager.resolve_session(USER)
    store.read_gate = asyncio.Event()
    reader = asyncio.create_task(manager.list_messages(session_id))
    await store.read_started.wait()

    await manager.append_message(session_id, USER, "hello", is_user=True)
    await manager.flush()
    store.read_gate.set()
    assert await reader == []

    store.read_gate = None
    messages = await manager.list_messages(session_id)
    assert [m.content for m in messages] == ["hello"]


@pytest.mark.asyncio
async def test_rename_during_session_read_is_not_hidden(manager, store):
    session_id = await manager.resolve_session(USER)
    manager.cache.clear()
    store.read_gate = asyncio.Event()
    reader = asyncio.create_task(manager.list_sessions(USER))
    await store.read_started.wait()

    assert await manager.rename_session(session_id, "Renamed") is True
    store.read_gate.set()
    assert (await reader)[0].title == "New Chat"

    store.read_gate = None
    sessions = await manager.list_sessions(USER)
    assert sessions[0].title == "Renamed"


async def test_rename_clears_session_cache(manager):
    session_id = await manager.resolve_session(USER)
    await manager.list_sessions(USER)

    assert await manager.rename_session(session_id, "Trip planning") is True

    sessions = await manager.list_sessions(USER)
    assert sessions[0].title == "Trip planning"


@pytest.mark.asyncio
async def test_rename_missing_or_temporary_session(manager, store):
    assert await manager.rename_session("missing", "x") is False
    assert await manager.rename_session("temp_1", "x") is False
    assert store.calls == ["update_session_title"]


@pytest.mark.asyncio
async def test_delete_removes_session_and_messages(manager):
    session_id = await manager.resolve_session(USER)
    await manager.append_message(session_id, USER, "hello", is_user=True)
    await manager.flush()
    assert len(await manager.list_messages(session_id)) == 1

    assert await manager.delete_session(session_id) is True

    assert await manager.list_sessions(USER) == []
    assert await manager.list_messages(session_id) == []


@pytest.mark.asyncio
async def test_delete_failure_returns_false(manager, store):
    session_id = await manager.resolve_session(USER)
    store.fail_writes = True

    assert await manager.delete_session(session_id) is False


@pytest.mark.asyncio
async def test_close_drains_pending_writes(store):
    manager = SessionManager(store)
    session_id = await manager.resolve_session(USER)

    await manager.append_message(session_id, USER, "last words", is_user=True)
    await manager.close()

    messages = await store.list_messages(session_id)
    assert [m.content for m in messages] == ["last words"]


def test_cache_rejects_put_after_invalidation():
    cache = SessionCache()
    token = cache.messages_token("s1")
    cache.invalidate_messages("s1")

    assert cache.put_messages("s1", [], token) is False
    assert cache.get_messages("s1") is None

    cache.clear()
    token = cache.sessions_token("u1")
    assert cache.put_sessions("u1", [], token) is True
    assert cache.get_sessions("u1") == ()
