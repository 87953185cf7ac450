"""
Interfaces of the engine's external collaborators.

The engine only talks to persistence, advice and export through these
protocols. All persistence calls are asynchronous and may raise; the
engine never assumes success before a call resolves.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, TYPE_CHECKING

from .models import Connection, ConnectionKind, Entity, EntityKind, Point

if TYPE_CHECKING:
    from .export import RenderSurface
    from .suggestions import Suggestion


class EntityStore(Protocol):
    async def create(
        self,
        kind: EntityKind,
        name: str,
        position: Point,
        properties: dict[str, Any],
    ) -> Entity: ...

    async def update(self, entity_id: str, patch: dict[str, Any]) -> Entity: ...

    async def delete(self, entity_id: str) -> None: ...

    async def list_all(self) -> list[Entity]: ...


class ConnectionStore(Protocol):
    async def create(
        self,
        source: str,
        target: str,
        kind: ConnectionKind,
        label: str,
    ) -> Connection: ...

    async def delete(self, connection_id: str) -> None: ...

    async def list_all(self) -> list[Connection]: ...


class SuggestionProvider(Protocol):
    async def generate(
        self,
        entities: Sequence[Entity],
        connections: Sequence[Connection],
    ) -> list["Suggestion"]: ...


class Exporter(Protocol):
    async def export(
        self,
        entities: Sequence[Entity],
        connections: Sequence[Connection],
        surface: Optional["RenderSurface"],
        fmt: str,
    ) -> bytes: ...
