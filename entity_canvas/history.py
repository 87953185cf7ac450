"""
Undo/redo history built from invertible commands.

Every committed mutation pushes one command. Undo and redo replay the
inverse or the original through the engine's commit primitives, so they
go through persistence and validation like any other change. Entities
and connections re-created by a replay get new ids from the store; the
history keeps an alias map so older commands still find them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

from .logging import get_logger
from .models import Connection, Entity, Point

if TYPE_CHECKING:
    from .engine import CanvasEngine

logger = get_logger("history")


class Command(ABC):
    """An invertible, already-committed mutation."""

    label: str = "change"

    @abstractmethod
    async def undo(self, engine: "CanvasEngine") -> bool:
        """Revert the mutation; False if it could not be reverted."""

    @abstractmethod
    async def redo(self, engine: "CanvasEngine") -> bool:
        """Re-apply the mutation; False if it could not be re-applied."""


@dataclass
class AddEntityCommand(Command):
    entity: Entity
    label: str = "add entity"

    async def undo(self, engine: "CanvasEngine") -> bool:
        entity_id = engine.history.resolve(self.entity.id)
        return await engine._commit_delete([entity_id]) is not None

    async def redo(self, engine: "CanvasEngine") -> bool:
        if engine.check_placement(self.entity, self.entity.position):
            return False
        created = await engine._commit_add(
            self.entity.kind, self.entity.name, self.entity.position, self.entity.properties
        )
        if created is None:
            return False
        engine.history.alias(self.entity.id, created.id)
        return True


@dataclass
class DeleteCommand(Command):
    """Deleted entities plus every connection removed with them."""
    entities: list[Entity]
    connections: list[Connection]
    label: str = "delete"

    async def undo(self, engine: "CanvasEngine") -> bool:
        for entity in self.entities:
            if engine.check_placement(entity, entity.position):
                return False
        restored: list[str] = []
        if await self._restore(engine, restored):
            return True
        # take back a partial restore so the step can be retried later
        if restored:
            await engine._commit_delete(restored)
        return False

    async def _restore(self, engine: "CanvasEngine", restored: list[str]) -> bool:
        for entity in self.entities:
            created = await engine._commit_add(entity.kind, entity.name, entity.position, entity.properties)
            if created is None:
                return False
            restored.append(created.id)
            engine.history.alias(entity.id, created.id)
        for connection in self.connections:
            connected = await engine._commit_connect(
                engine.history.resolve(connection.source),
                engine.history.resolve(connection.target),
                connection.kind,
                connection.label,
            )
            if connected is None:
                return False
            engine.history.alias(connection.id, connected.id)
        return True

    async def redo(self, engine: "CanvasEngine") -> bool:
        entity_ids = [engine.history.resolve(e.id) for e in self.entities]
        connection_ids = [engine.history.resolve(c.id) for c in self.connections]
        return await engine._commit_delete(entity_ids, connection_ids) is not None


@dataclass
class MoveCommand(Command):
    before: dict[str, Point]
    after: dict[str, Point]
    label: str = "move"

    async def _apply(self, engine: "CanvasEngine", positions: dict[str, Point]) -> bool:
        resolved = {engine.history.resolve(eid): p for eid, p in positions.items()}
        if engine.check_moves(resolved):
            return False
        return await engine._commit_moves(resolved)

    async def undo(self, engine: "CanvasEngine") -> bool:
        return await self._apply(engine, self.before)

    async def redo(self, engine: "CanvasEngine") -> bool:
        return await self._apply(engine, self.after)


@dataclass
class UpdateEntityCommand(Command):
    entity_id: str
    before: dict[str, Any]
    after: dict[str, Any]
    label: str = "edit entity"

    async def undo(self, engine: "CanvasEngine") -> bool:
        entity_id = engine.history.resolve(self.entity_id)
        return await engine._commit_update(entity_id, self.before) is not None

    async def redo(self, engine: "CanvasEngine") -> bool:
        entity_id = engine.history.resolve(self.entity_id)
        return await engine._commit_update(entity_id, self.after) is not None


@dataclass
class ConnectCommand(Command):
    connection: Connection
    label: str = "connect"

    async def undo(self, engine: "CanvasEngine") -> bool:
        connection_id = engine.history.resolve(self.connection.id)
        return await engine._commit_delete([], [connection_id]) is not None

    async def redo(self, engine: "CanvasEngine") -> bool:
        source = engine.history.resolve(self.connection.source)
        target = engine.history.resolve(self.connection.target)
        if engine.check_connection(source, target):
            return False
        created = await engine._commit_connect(source, target, self.connection.kind, self.connection.label)
        if created is None:
            return False
        engine.history.alias(self.connection.id, created.id)
        return True


@dataclass
class CompoundCommand(Command):
    """Several commands undone and redone as one step (e.g. a paste)."""
    commands: list[Command]
    label: str = "batch"

    async def undo(self, engine: "CanvasEngine") -> bool:
        for command in reversed(self.commands):
            if not await command.undo(engine):
                return False
        return True

    async def redo(self, engine: "CanvasEngine") -> bool:
        for command in self.commands:
            if not await command.redo(engine):
                return False
        return True


@dataclass
class History:
    """Linear undo/redo stacks with a bounded depth."""
    max_history: int = 100
    _past: list[Command] = field(default_factory=list)
    _future: list[Command] = field(default_factory=list)
    _aliases: dict[str, str] = field(default_factory=dict)

    @property
    def can_undo(self) -> bool:
        return len(self._past) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._future) > 0

    def push(self, command: Command):
        """Record a new mutation; a new action invalidates the redo stack."""
        self._future.clear()
        self._past.append(command)
        if len(self._past) > self.max_history:
            self._past.pop(0)

    def clear(self):
        self._past.clear()
        self._future.clear()
        self._aliases.clear()

    def alias(self, old_id: str, new_id: str):
        if old_id != new_id:
            self._aliases[old_id] = new_id

    def resolve(self, item_id: str) -> str:
        seen = set()
        while item_id in self._aliases and item_id not in seen:
            seen.add(item_id)
            item_id = self._aliases[item_id]
        return item_id

    async def undo(self, engine: "CanvasEngine") -> bool:
        if not self._past:
            return False
        command = self._past.pop()
        if not await command.undo(engine):
            self._past.append(command)
            logger.info("Undo of %s refused", command.label)
            return False
        self._future.append(command)
        return True

    async def redo(self, engine: "CanvasEngine") -> bool:
        if not self._future:
            return False
        command = self._future.pop()
        if not await command.redo(engine):
            self._future.append(command)
            logger.info("Redo of %s refused", command.label)
            return False
        self._past.append(command)
        return True
