"""Tests for the in-memory persistence collaborators."""

import pytest

from entity_canvas.errors import NotFoundError, PersistenceError
from entity_canvas.models import ConnectionKind, EntityKind, Point
from entity_canvas.store import InMemoryConnectionStore, InMemoryEntityStore


class TestInMemoryEntityStore:
    @pytest.mark.asyncio
    async def test_create_assigns_id(self) -> None:
        store = InMemoryEntityStore()
        entity = await store.create(EntityKind.LLC, "Holdings", Point(x=20, y=40), {"state": "DE"})
        assert entity.id.startswith("ent")
        assert (await store.get(entity.id)).name == "Holdings"

    @pytest.mark.asyncio
    async def test_returns_copies(self, make_entity) -> None:
        store = InMemoryEntityStore([make_entity(EntityKind.LLC, 0, 0, "A", entity_id="a")])
        fetched = await store.get("a")
        fetched.properties["mutated"] = True
        assert "mutated" not in (await store.get("a")).properties

    @pytest.mark.asyncio
    async def test_partial_update(self, make_entity) -> None:
        store = InMemoryEntityStore([make_entity(EntityKind.LLC, 0, 0, "A", entity_id="a")])
        updated = await store.update("a", {"position": {"x": 40, "y": 60}, "name": None, "id": "hijack"})
        assert updated.id == "a"
        assert updated.name == "A"
        assert updated.position == Point(x=40, y=60)

    @pytest.mark.asyncio
    async def test_unknown_ids(self) -> None:
        store = InMemoryEntityStore()
        with pytest.raises(NotFoundError):
            await store.get("missing")
        with pytest.raises(NotFoundError):
            await store.update("missing", {"name": "x"})
        with pytest.raises(NotFoundError):
            await store.delete("missing")

    @pytest.mark.asyncio
    async def test_change_callbacks(self) -> None:
        store = InMemoryEntityStore()
        calls = []
        store.on_change(lambda: calls.append(1))
        entity = await store.create(EntityKind.TRUST, "T", Point(), {})
        await store.delete(entity.id)
        assert len(calls) == 2
        assert await store.list_all() == []


class TestInMemoryConnectionStore:
    @pytest.mark.asyncio
    async def test_create_and_delete(self) -> None:
        store = InMemoryConnectionStore()
        connection = await store.create("a", "b", ConnectionKind.OWNERSHIP, "owns")
        assert [c.id for c in await store.list_all()] == [connection.id]
        await store.delete(connection.id)
        assert await store.list_all() == []

    @pytest.mark.asyncio
    async def test_refuses_duplicate_pair_in_either_direction(self) -> None:
        store = InMemoryConnectionStore()
        await store.create("a", "b", ConnectionKind.OWNERSHIP, "owns")
        with pytest.raises(PersistenceError):
            await store.create("b", "a", ConnectionKind.OWNERSHIP, "owns")

    @pytest.mark.asyncio
    async def test_requires_both_endpoints(self) -> None:
        with pytest.raises(PersistenceError):
            await InMemoryConnectionStore().create("a", "", ConnectionKind.OWNERSHIP, "owns")

    @pytest.mark.asyncio
    async def test_delete_unknown(self) -> None:
        with pytest.raises(NotFoundError):
            await InMemoryConnectionStore().delete("missing")
