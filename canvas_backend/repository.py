"""
Structure Repository - server-side state and file persistence.

This module implements:
- Single structure state (one structure open at a time)
- O(1) entity/connection lookups via index dictionaries
- Cascading connection removal when an entity is deleted
- Placement and connection rules re-checked on every create
- JSON file persistence
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from entity_canvas.config import CanvasConfig
from entity_canvas.errors import NotFoundError, RuleViolationError
from entity_canvas.geometry import Size
from entity_canvas.logging import get_logger
from entity_canvas.models import (
    Connection, Entity, EntityKind, Point, Structure, StructureMetadata,
    derive_connection_kind, validate_properties,
)
from entity_canvas.validation import Violation, ViolationCode, validate_connection, validate_placement

logger = get_logger("backend.repository")


class StructureRepository:
    """
    Holds the entities and connections of one structure.

    Change callbacks are plain callables; the app bridges them to
    WebSocket broadcasts.
    """

    def __init__(self, config: Optional[CanvasConfig] = None):
        self._config = config or CanvasConfig()
        self._structure = Structure(metadata=StructureMetadata(grid_size=self._config.grid_size))
        self._file_path: Optional[Path] = None
        self._dirty = False
        self._on_change_callbacks: list[Callable[[], None]] = []

        # O(1) lookup indexes
        self._entity_index: dict[str, Entity] = {}
        self._connection_index: dict[str, Connection] = {}
        self._connections_by_entity: dict[str, set[str]] = {}

    # --- Index Management ---

    def _rebuild_indexes(self):
        self._entity_index = {e.id: e for e in self._structure.entities}
        self._connection_index = {}
        self._connections_by_entity = {e.id: set() for e in self._structure.entities}
        for connection in self._structure.connections:
            self._index_connection(connection)

    def _index_connection(self, connection: Connection):
        self._connection_index[connection.id] = connection
        self._connections_by_entity.setdefault(connection.source, set()).add(connection.id)
        self._connections_by_entity.setdefault(connection.target, set()).add(connection.id)

    def _unindex_connection(self, connection: Connection):
        self._connection_index.pop(connection.id, None)
        for endpoint in (connection.source, connection.target):
            if endpoint in self._connections_by_entity:
                self._connections_by_entity[endpoint].discard(connection.id)

    # --- Properties ---

    @property
    def structure(self) -> Structure:
        return self._structure

    @property
    def file_path(self) -> Optional[Path]:
        return self._file_path

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def entity_size(self) -> Size:
        return Size(self._config.entity_width, self._config.entity_height)

    # --- Change Callbacks ---

    def on_change(self, callback: Callable[[], None]):
        """Register a callback for structure changes."""
        self._on_change_callbacks.append(callback)

    def _changed(self):
        self._dirty = True
        self._structure.metadata.updated_at = datetime.now(timezone.utc)
        for callback in self._on_change_callbacks:
            callback()

    # --- File Operations ---

    def new_structure(self, name: str = "Untitled Structure") -> Structure:
        self._structure = Structure(name=name, metadata=StructureMetadata(grid_size=self._config.grid_size))
        self._file_path = None
        self._rebuild_indexes()
        self._changed()
        self._dirty = False
        return self._structure

    def open_structure(self, file_path: str | Path) -> Structure:
        """Open a structure from a JSON file."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Structure file not found: {path}")

        with open(path, "r") as f:
            data = json.load(f)

        self._structure = Structure.from_json_dict(data)
        self._file_path = path
        self._rebuild_indexes()
        self._changed()
        self._dirty = False
        logger.info("Opened %s (%d entities)", path, len(self._structure.entities))
        return self._structure

    def save_structure(self, file_path: Optional[str | Path] = None) -> Path:
        """
        Save the structure to a JSON file.

        If file_path is provided, save to that path (Save As).
        Otherwise, save to the current file_path.
        """
        if file_path:
            path = Path(file_path)
        elif self._file_path:
            path = self._file_path
        else:
            raise ValueError("No file path specified and no current file path")

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self._structure.to_json_dict(), f, indent=2)

        self._file_path = path
        self._dirty = False
        logger.info("Saved structure to %s", path)
        return path

    def get_state(self) -> dict:
        state = self._structure.to_json_dict()
        state["file_path"] = str(self._file_path) if self._file_path else None
        state["dirty"] = self._dirty
        return state

    # --- Entity Operations ---

    def list_entities(self) -> list[Entity]:
        return list(self._structure.entities)

    def get_entity(self, entity_id: str) -> Entity:
        entity = self._entity_index.get(entity_id)
        if entity is None:
            raise NotFoundError("Entity", entity_id)
        return entity

    def add_entity(
        self,
        kind: EntityKind,
        name: str = "",
        position: Optional[Point] = None,
        properties: Optional[dict[str, Any]] = None,
    ) -> Entity:
        """Create an entity after re-checking the placement rules."""
        properties = validate_properties(kind, properties or {})
        entity = Entity(kind=kind, name=name, position=position or Point(), properties=properties)
        violations = validate_placement(
            entity, entity.position, self._structure.entities, self.entity_size, self._config.overlap_tolerance
        )
        if violations:
            raise RuleViolationError(violations)

        self._structure.entities.append(entity)
        self._entity_index[entity.id] = entity
        self._connections_by_entity[entity.id] = set()
        self._changed()
        return entity

    def update_entity(
        self,
        entity_id: str,
        name: Optional[str] = None,
        position: Optional[Point] = None,
        properties: Optional[dict[str, Any]] = None,
    ) -> Entity:
        """
        Partially update an entity.

        Positions are checked for bounds only: a multi-entity move
        arrives as a sequence of single updates whose intermediate
        states may overlap.
        """
        entity = self.get_entity(entity_id)
        if position is not None and (position.x < 0 or position.y < 0):
            raise RuleViolationError([
                Violation(ViolationCode.OUT_OF_BOUNDS, "Entity must be within canvas bounds", entity_id)
            ])
        if properties is not None:
            properties = validate_properties(entity.kind, properties)

        if name is not None:
            entity.name = name
        if position is not None:
            entity.position = position
        if properties is not None:
            entity.properties = properties
        self._changed()
        return entity

    def delete_entity(self, entity_id: str):
        """Delete an entity and all connections touching it."""
        entity = self.get_entity(entity_id)
        self._structure.entities = [e for e in self._structure.entities if e.id != entity_id]
        self._entity_index.pop(entity_id, None)

        touching = self._connections_by_entity.pop(entity_id, set())
        if touching:
            self._structure.connections = [c for c in self._structure.connections if c.id not in touching]
            for connection_id in touching:
                connection = self._connection_index.get(connection_id)
                if connection:
                    self._unindex_connection(connection)
        logger.debug("Deleted %s with %d connections", entity.id, len(touching))
        self._changed()

    # --- Connection Operations ---

    def list_connections(self) -> list[Connection]:
        return list(self._structure.connections)

    def add_connection(self, source: str, target: str, label: str = "") -> Connection:
        """
        Create a connection after re-checking the connection rules.

        The kind is always derived from the target; a custom label is kept.
        """
        violations = validate_connection(source, target, self._structure.entities, self._structure.connections)
        if violations:
            if any(v.code == ViolationCode.UNKNOWN_ENTITY for v in violations):
                missing = next(v.entity_id for v in violations if v.code == ViolationCode.UNKNOWN_ENTITY)
                raise NotFoundError("Entity", missing)
            raise RuleViolationError(violations)

        kind, default_label = derive_connection_kind(self._entity_index[target].kind)
        connection = Connection(source=source, target=target, kind=kind, label=label or default_label)
        self._structure.connections.append(connection)
        self._index_connection(connection)
        self._changed()
        return connection

    def delete_connection(self, connection_id: str):
        connection = self._connection_index.get(connection_id)
        if connection is None:
            raise NotFoundError("Connection", connection_id)
        self._structure.connections = [c for c in self._structure.connections if c.id != connection_id]
        self._unindex_connection(connection)
        self._changed()
