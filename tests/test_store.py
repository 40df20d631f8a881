"""Tests for the DataStore gateway and the in-process change feed."""

import asyncio

import pytest

from app.core.exceptions import ConflictError, NotFound
from app.db.realtime import DELETE, INSERT, UPDATE, Change, ChangeFeed
from app.db.store import DataStore


async def _profile(store: DataStore, pid: str, name: str | None, email: str) -> None:
    await store.insert("profiles", {"id": pid, "full_name": name, "email": email, "role": "member"})


@pytest.mark.asyncio
async def test_select_filters_and_ordering(store: DataStore):
    await _profile(store, "p1", "Zed", "z@example.com")
    await _profile(store, "p2", None, "n@example.com")
    await _profile(store, "p3", "Amy", "a@example.com")

    rows = await store.select("profiles", order_by=("full_name",))
    assert [r.id for r in rows] == ["p3", "p1", "p2"]  # NULL last

    rows = await store.select("profiles", order_by=("-full_name",))
    assert [r.id for r in rows] == ["p1", "p3", "p2"]

    rows = await store.select("profiles", {"id": ["p1", "p3"]}, order_by=("id",))
    assert [r.id for r in rows] == ["p1", "p3"]

    rows = await store.select("profiles", {"full_name": None})
    assert [r.id for r in rows] == ["p2"]


@pytest.mark.asyncio
async def test_one_raises_not_found(store: DataStore):
    with pytest.raises(NotFound, match="Task not found"):
        await store.one("tasks", {"id": 999}, "Task")


@pytest.mark.asyncio
async def test_unknown_collection(store: DataStore):
    with pytest.raises(NotFound):
        await store.select("nope")


@pytest.mark.asyncio
async def test_duplicate_insert_maps_to_conflict(store: DataStore):
    await store.insert("accounts", {"id": "a1", "email": "dup@example.com", "hashed_password": "x"})
    with pytest.raises(ConflictError):
        await store.insert(
            "accounts", {"id": "a2", "email": "dup@example.com", "hashed_password": "x"}
        )
    # Session is usable after the rollback
    assert (await store.one("accounts", {"email": "dup@example.com"})).id == "a1"


@pytest.mark.asyncio
async def test_upsert_updates_or_keeps(store: DataStore):
    row = await store.upsert(
        "profiles", {"id": "p1", "full_name": "First", "role": "member"}, conflict=("id",)
    )
    assert row.full_name == "First"

    row = await store.upsert(
        "profiles", {"id": "p1", "full_name": "Second", "role": "member"}, conflict=("id",)
    )
    assert row.full_name == "Second"

    row = await store.upsert(
        "profiles",
        {"id": "p1", "full_name": "Ignored", "role": "admin"},
        conflict=("id",),
        update_columns=(),
    )
    assert row.full_name == "Second"
    assert row.role == "member"


@pytest.mark.asyncio
async def test_update_and_delete_by_filter(store: DataStore):
    await _profile(store, "p1", "A", "a@example.com")
    await _profile(store, "p2", "B", "b@example.com")

    rows = await store.update("profiles", {"designation": "Engineer"}, {"id": ["p1", "p2"]})
    assert {r.designation for r in rows} == {"Engineer"}

    assert await store.delete("profiles", {"id": "p1"}) == 1
    assert await store.delete("profiles", {"id": "p1"}) == 0
    assert [r.id for r in await store.select("profiles")] == ["p2"]


@pytest.mark.asyncio
async def test_transaction_publishes_after_commit(store: DataStore, feed: ChangeFeed):
    with feed.subscribe("profiles") as sub:
        async with store.transaction():
            await _profile(store, "p1", "A", "a@example.com")
            await store.update("profiles", {"full_name": "A2"}, {"id": "p1"})
            assert sub.queue.empty()
        first = await sub.get(timeout=1)
        second = await sub.get(timeout=1)
    assert (first.op, second.op) == (INSERT, UPDATE)
    assert second.row["full_name"] == "A2"


@pytest.mark.asyncio
async def test_failed_transaction_rolls_back(store: DataStore, feed: ChangeFeed):
    with feed.subscribe("profiles") as sub:
        with pytest.raises(RuntimeError):
            async with store.transaction():
                await _profile(store, "p1", "A", "a@example.com")
                raise RuntimeError("boom")
        assert sub.queue.empty()
    assert await store.get("profiles", {"id": "p1"}) is None


@pytest.mark.asyncio
async def test_rpc_unknown_procedure(store: DataStore):
    with pytest.raises(NotFound):
        await store.rpc("does_not_exist")


# ── Change feed ─────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_feed_matches_on_filters():
    feed = ChangeFeed()
    with feed.subscribe("task_comments", task_id=1) as sub:
        assert feed.publish(Change("task_comments", INSERT, {"task_id": 2})) == 0
        assert feed.publish(Change("tasks", INSERT, {"task_id": 1})) == 0
        assert feed.publish(Change("task_comments", DELETE, {"task_id": 1})) == 1
        change = await sub.get(timeout=1)
        assert change.op == DELETE
    assert feed.subscriber_count == 0


@pytest.mark.asyncio
async def test_full_queue_drops_oldest():
    feed = ChangeFeed(maxsize=2)
    sub = feed.subscribe("tasks")
    for i in range(3):
        feed.publish(Change("tasks", UPDATE, {"id": i}))
    assert [(await sub.get()).row["id"] for _ in range(2)] == [1, 2]
    with pytest.raises(asyncio.TimeoutError):
        await sub.get(timeout=0.01)
    sub.close()
