"""
In-memory persistence collaborators.

Async key-value stores for entities and connections with O(1) lookups
by id. An optional `latency` simulates a remote service. Both stores hand
out copies so callers never share mutable state with the store.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable, Optional

from .errors import NotFoundError, PersistenceError
from .models import Connection, ConnectionKind, Entity, EntityKind, Point


class _BaseStore:
    def __init__(self, latency: float = 0.0):
        self._latency = latency
        self._on_change_callbacks: list[Callable[[], None]] = []

    def on_change(self, callback: Callable[[], None]):
        """Register a callback for store changes."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self):
        for callback in self._on_change_callbacks:
            callback()

    async def _delay(self):
        if self._latency > 0:
            await asyncio.sleep(self._latency)


class InMemoryEntityStore(_BaseStore):
    """Entity persistence held in a dict keyed by id."""

    def __init__(self, entities: Optional[Iterable[Entity]] = None, latency: float = 0.0):
        super().__init__(latency)
        self._index: dict[str, Entity] = {}
        for entity in entities or []:
            self._index[entity.id] = entity.model_copy(deep=True)

    async def create(
        self,
        kind: EntityKind,
        name: str,
        position: Point,
        properties: dict[str, Any],
    ) -> Entity:
        await self._delay()
        entity = Entity(kind=kind, name=name, position=position, properties=dict(properties))
        self._index[entity.id] = entity
        self._notify_change()
        return entity.model_copy(deep=True)

    async def get(self, entity_id: str) -> Entity:
        await self._delay()
        entity = self._index.get(entity_id)
        if entity is None:
            raise NotFoundError("Entity", entity_id)
        return entity.model_copy(deep=True)

    async def update(self, entity_id: str, patch: dict[str, Any]) -> Entity:
        """Apply a partial update; unknown fields are ignored, None values skipped."""
        await self._delay()
        entity = self._index.get(entity_id)
        if entity is None:
            raise NotFoundError("Entity", entity_id)
        updates = {k: v for k, v in patch.items() if v is not None and k in ("name", "position", "properties")}
        if "position" in updates and not isinstance(updates["position"], Point):
            updates["position"] = Point.model_validate(updates["position"])
        updated = entity.model_copy(update=updates, deep=True)
        self._index[entity_id] = updated
        self._notify_change()
        return updated.model_copy(deep=True)

    async def delete(self, entity_id: str) -> None:
        await self._delay()
        if self._index.pop(entity_id, None) is None:
            raise NotFoundError("Entity", entity_id)
        self._notify_change()

    async def list_all(self) -> list[Entity]:
        await self._delay()
        return [e.model_copy(deep=True) for e in self._index.values()]


class InMemoryConnectionStore(_BaseStore):
    """
    Connection persistence held in a dict keyed by id.

    Like the service it stands in for, it refuses a second connection
    between the same unordered pair.
    """

    def __init__(self, connections: Optional[Iterable[Connection]] = None, latency: float = 0.0):
        super().__init__(latency)
        self._index: dict[str, Connection] = {}
        for connection in connections or []:
            self._index[connection.id] = connection.model_copy()

    async def create(
        self,
        source: str,
        target: str,
        kind: ConnectionKind,
        label: str,
    ) -> Connection:
        await self._delay()
        if not source or not target:
            raise PersistenceError("Connection requires both 'from' and 'to' entity IDs")
        pair = frozenset((source, target))
        if any(c.pair == pair for c in self._index.values()):
            raise PersistenceError("Connection already exists between these entities")
        connection = Connection(source=source, target=target, kind=kind, label=label)
        self._index[connection.id] = connection
        self._notify_change()
        return connection.model_copy()

    async def delete(self, connection_id: str) -> None:
        await self._delay()
        if self._index.pop(connection_id, None) is None:
            raise NotFoundError("Connection", connection_id)
        self._notify_change()

    async def list_all(self) -> list[Connection]:
        await self._delay()
        return [c.model_copy() for c in self._index.values()]
