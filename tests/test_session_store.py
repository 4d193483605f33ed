import pytest

from travel_agent.domain.context.context_window import ContextWindowSelector
from travel_agent.domain.context.memory.session_store import InMemorySessionStore
from travel_agent.domain.models.conversation import Message

from .conftest import DownSessionStore


def user(content: str) -> Message:
    return Message(role="user", content=content)


def assistant(content: str, **metadata) -> Message:
    return Message(role="assistant", content=content, metadata=metadata or None)


@pytest.mark.asyncio
async def test_unknown_key_reads_empty(store):
    assert await store.read_all("never-used") == []
    assert await store.read_recent("never-used", 5) == []


@pytest.mark.asyncio
async def test_round_trip_preserves_order_role_and_content(store):
    sent = [user("hi"), assistant("hello", category="general"), user("hotels in Hanoi?")]
    for msg in sent:
        result = await store.append("s1", msg)
        assert result.ok

    stored = await store.read_all("s1")

    assert [(m.role, m.content) for m in stored] == [(m.role, m.content) for m in sent]
    assert stored[1].metadata == {"category": "general"}


@pytest.mark.asyncio
async def test_append_stamps_timestamp_from_store_clock(store, clock):
    await store.append("s1", user("hi"))

    stored = await store.read_all("s1")
    assert stored[0].timestamp == clock.now


@pytest.mark.asyncio
async def test_length_bound_evicts_oldest_first(clock):
    store = InMemorySessionStore(max_messages=5, clock=clock)

    for i in range(12):
        await store.append("s1", user(f"m{i}"))
        assert len(await store.read_all("s1")) <= 5

    stored = await store.read_all("s1")
    assert [m.content for m in stored] == ["m7", "m8", "m9", "m10", "m11"]


@pytest.mark.asyncio
async def test_read_recent_returns_tail(store):
    for i in range(6):
        await store.append("s1", user(f"m{i}"))

    recent = await store.read_recent("s1", 3)

    assert [m.content for m in recent] == ["m3", "m4", "m5"]
    assert await store.read_recent("s1", 0) == []


@pytest.mark.asyncio
async def test_sessions_are_isolated(store):
    await store.append("a", user("for a"))
    await store.append("b", user("for b"))

    assert [m.content for m in await store.read_all("a")] == ["for a"]
    assert [m.content for m in await store.read_all("b")] == ["for b"]


@pytest.mark.asyncio
async def test_delete_is_idempotent(store):
    await store.append("s1", user("hi"))

    assert (await store.delete("s1")).ok
    assert (await store.delete("s1")).ok
    assert (await store.delete("missing")).ok
    assert await store.read_all("s1") == []


@pytest.mark.asyncio
async def test_session_expires_after_ttl_of_inactivity(clock):
    store = InMemorySessionStore(ttl_seconds=60, clock=clock)
    await store.append("s1", user("hi"))

    clock.advance(59)
    assert len(await store.read_all("s1")) == 1

    clock.advance(2)
    assert await store.read_all("s1") == []


@pytest.mark.asyncio
async def test_refresh_ttl_extends_expiry_without_changing_content(clock):
    store = InMemorySessionStore(ttl_seconds=60, clock=clock)
    await store.append("s1", user("hi"))

    clock.advance(50)
    assert (await store.refresh_ttl("s1")).ok
    clock.advance(50)

    stored = await store.read_all("s1")
    assert [m.content for m in stored] == ["hi"]


@pytest.mark.asyncio
async def test_append_refreshes_ttl(clock):
    store = InMemorySessionStore(ttl_seconds=60, clock=clock)
    await store.append("s1", user("first"))
    clock.advance(50)
    await store.append("s1", user("second"))
    clock.advance(50)

    assert len(await store.read_all("s1")) == 2


@pytest.mark.asyncio
async def test_clear_expired_and_stats(clock):
    store = InMemorySessionStore(ttl_seconds=10, clock=clock)
    await store.append("old", user("hi"))
    clock.advance(5)
    await store.append("new", user("hi"))
    clock.advance(7)

    stats = await store.get_stats()
    assert stats == {"total_sessions": 2, "active_sessions": 1, "expired_sessions": 1}

    assert await store.clear_expired() == 1
    assert (await store.get_stats())["total_sessions"] == 1


@pytest.mark.asyncio
async def test_unreachable_backend_degrades_instead_of_raising():
    store = DownSessionStore()

    result = await store.append("s1", user("hi"))

    assert not result.ok
    assert result.error is not None
    assert await store.read_all("s1") == []
    assert await store.read_recent("s1", 3) == []
    assert not (await store.delete("s1")).ok
    assert not (await store.refresh_ttl("s1")).ok
    assert await store.ping() is False
    assert not store.available


@pytest.mark.asyncio
async def test_context_window_is_independent_of_retention(clock):
    store = InMemorySessionStore(max_messages=20, clock=clock)
    for i in range(15):
        await store.append("s1", user(f"m{i}"))

    window = await ContextWindowSelector(window_size=4).select(store, "s1")

    assert [m.content for m in window] == ["m11", "m12", "m13", "m14"]
    assert len(await store.read_all("s1")) == 15


@pytest.mark.asyncio
async def test_abandoned_sessions_are_reclaimed_when_a_new_session_starts(clock):
    store = InMemorySessionStore(ttl_seconds=60, clock=clock)
    for i in range(500):
        await store.append(f"s{i}", user("hi"))

    clock.advance(3600)
    await store.append("fresh", user("hi"))

    assert list(store.sessions) == ["fresh"]


@pytest.mark.asyncio
async def test_live_sessions_survive_the_sweep(clock):
    store = InMemorySessionStore(ttl_seconds=60, clock=clock)
    await store.append("old", user("hi"))
    clock.advance(30)
    await store.append("recent", user("hi"))
    clock.advance(40)

    await store.append("fresh", user("hi"))

    assert sorted(store.sessions) == ["fresh", "recent"]
