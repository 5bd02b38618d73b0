import asyncio

import pytest

from context_service.domain.errors import AppendOnlyViolation, NotFoundError
from context_service.domain.models.context import Context, ContextHistory
from context_service.domain.store.history_store import InMemoryContextHistoryStore


def snapshot(context_id="ctx-1", version=1, name="A") -> ContextHistory:
    return ContextHistory.from_context(Context(id=context_id, name=name, content="x", version=version))


def test_create_assigns_id_and_timestamp():
    store = InMemoryContextHistoryStore()
    created = asyncio.run(store.create(snapshot()))

    assert created.id
    assert created.created_time is not None
    assert created.context_id == "ctx-1"
    assert created.version == 1
    assert created.name == "A"


def test_get_by_id():
    store = InMemoryContextHistoryStore()

    async def scenario():
        created = await store.create(snapshot())
        fetched = await store.get_by_id(created.id)
        with pytest.raises(NotFoundError):
            await store.get_by_id("missing")
        return created, fetched

    created, fetched = asyncio.run(scenario())
    assert created == fetched


def test_filter_by_context_id_orders_by_version():
    store = InMemoryContextHistoryStore()

    async def scenario():
        await store.create(snapshot(version=2, name="B"))
        await store.create(snapshot(version=1, name="A"))
        await store.create(snapshot(context_id="other"))
        return await store.filter({"contextId": "ctx-1"}), await store.filter({"contextId": "none"})

    rows, none = asyncio.run(scenario())
    assert [(r.version, r.name) for r in rows] == [(1, "A"), (2, "B")]
    assert none == []


def test_one_row_per_context_version():
    store = InMemoryContextHistoryStore()

    async def scenario():
        first = await store.create(snapshot())
        second = await store.create(snapshot())
        return first, second, await store.filter({"context_id": "ctx-1"})

    first, second, rows = asyncio.run(scenario())
    assert first.id == second.id
    assert len(rows) == 1


def test_history_is_append_only():
    store = InMemoryContextHistoryStore()

    with pytest.raises(AppendOnlyViolation):
        asyncio.run(store.update(snapshot()))
    with pytest.raises(AppendOnlyViolation):
        asyncio.run(store.delete("any"))
