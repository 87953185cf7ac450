"""
Canvas Engine - the interaction coordinator.

Owns the local copy of the structure and turns pointer, wheel and key
events into committed changes. It coordinates:
- Indexes of entities and connections (O(1) lookups, edges by entity)
- Selection, drag, connection draft and viewport controllers
- The InputBus listeners of the active multi-event operation
- Undo/redo history
- Persistence, advice and export collaborators

Only one of drag, draft, pan or rectangle selection is active at a
time. Commits are optimistic: local state changes first, the store is
awaited afterwards, and a failed store call rolls the local change back
and raises a notification.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Sequence

from .analysis import StructureSummary, summarize_structure
from .collaborators import ConnectionStore, EntityStore, Exporter, SuggestionProvider
from .config import CanvasConfig
from .connections import (
    ConnectionDetail, ConnectionDraftMachine, DraftOutcome, DraftResult, PreviewLine,
    describe_connection, propose_connection,
)
from .drag import AlignmentGuide, DragController, DragResult, check_positions, plan_nudge
from .errors import ExportError, NotFoundError, PersistenceError
from .events import (
    POINTER_LEAVE, POINTER_MOVE, POINTER_UP,
    InputBus, KeyEvent, Listener, PointerButton, PointerEvent, WheelEvent,
)
from .export import RenderSurface
from .geometry import Box, HitKind, HitTarget, Size, Viewport, clamp_to_bounds, hit_test, snap
from .history import (
    AddEntityCommand, CompoundCommand, ConnectCommand, DeleteCommand, History,
    MoveCommand, UpdateEntityCommand,
)
from .keyboard import KeyboardDispatcher, Keymap
from .layout import align_entities, distribute_entities, find_free_position, snap_positions
from .logging import get_logger
from .models import (
    Connection, ConnectionKind, DEFAULT_NAMES, DEFAULT_POSITIONS, Entity, EntityKind, Point,
    Structure, StructureMetadata, default_properties, validate_properties,
)
from .notifications import LoggingNotifier, Notification, NotificationLevel, Notifier, ViolationBanner
from .selection import SelectionManager
from .suggestions import ActionType, Suggestion, SuggestionAction
from .validation import (
    ValidationIssue, Violation, ViolationCode, validate_connection, validate_placement,
    validate_structure,
)
from .viewport import ViewportController

logger = get_logger("engine")


class Interaction(str, Enum):
    """The multi-event operation currently in progress."""
    IDLE = "idle"
    DRAGGING = "dragging"
    DRAFTING = "drafting"
    PANNING = "panning"
    SELECTING = "selecting"


@dataclass
class OperationResult:
    """Outcome of an engine operation; `ok` is False on rejection or failure."""
    ok: bool
    violations: list[Violation] = field(default_factory=list)
    entities: list[Entity] = field(default_factory=list)
    connection: Optional[Connection] = None

    @property
    def entity(self) -> Optional[Entity]:
        return self.entities[0] if self.entities else None


class CanvasEngine:
    """
    Headless interactive canvas over an entity store and a connection store.

    Pointer and wheel events are in screen space; everything else in
    canvas space. Call `load()` once before feeding events.
    """

    def __init__(
        self,
        entity_store: EntityStore,
        connection_store: ConnectionStore,
        config: Optional[CanvasConfig] = None,
        advisor: Optional[SuggestionProvider] = None,
        exporter: Optional[Exporter] = None,
        notifier: Optional[Notifier] = None,
        accessibility: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        keymap: Optional[Keymap] = None,
    ):
        self.config = config or CanvasConfig()
        self._entity_store = entity_store
        self._connection_store = connection_store
        self._advisor = advisor
        self._exporter = exporter
        self._notifier = notifier or LoggingNotifier()
        self._accessibility = accessibility

        # O(1) lookup indexes; entity insertion order is draw order
        self._entities: dict[str, Entity] = {}
        self._connections: dict[str, Connection] = {}
        self._edges_by_entity: dict[str, set[str]] = {}
        self._on_change_callbacks: list[Callable[[], None]] = []
        # provisional id -> future of its store id (None if the create failed)
        self._pending: dict[str, asyncio.Future] = {}

        self.selection = SelectionManager()
        self.viewport = ViewportController(self.config)
        self.drag = DragController(self.config)
        self.draft = ConnectionDraftMachine(self.entity_size)
        self.bus = InputBus()
        self.banner = ViolationBanner(self.config.banner_duration, clock)
        self.history = History(self.config.max_history)
        self.keyboard = KeyboardDispatcher(self, keymap)

        self.show_grid = True
        self._interaction = Interaction.IDLE
        self._listeners: list[Listener] = []
        self._rect_moved = False
        self._last_result: Any = None
        self._clipboard: list[Entity] = []
        self._paste_count = 0
        self._detail: Optional[ConnectionDetail] = None

        self.selection.on_change(self._announce_selection)

    # --- Properties ---

    @property
    def entity_size(self) -> Size:
        return Size(self.config.entity_width, self.config.entity_height)

    @property
    def canvas_size(self) -> Size:
        return Size(self.config.canvas_width, self.config.canvas_height)

    @property
    def entities(self) -> list[Entity]:
        return list(self._entities.values())

    @property
    def connections(self) -> list[Connection]:
        return list(self._connections.values())

    @property
    def interaction(self) -> Interaction:
        return self._interaction

    @property
    def listener_count(self) -> int:
        return self.bus.listener_count

    @property
    def connection_detail(self) -> Optional[ConnectionDetail]:
        """The read-only detail view opened by clicking a committed edge."""
        return self._detail

    @property
    def live_positions(self) -> dict[str, Point]:
        """Positions of dragged entities while a drag is in progress."""
        session = self.drag.session
        return dict(session.current) if session else {}

    @property
    def live_violations(self) -> list[Violation]:
        session = self.drag.session
        if session is None:
            return []
        return [v for found in session.violations.values() for v in found]

    @property
    def guides(self) -> list[AlignmentGuide]:
        session = self.drag.session
        return list(session.guides) if session else []

    @property
    def preview_line(self) -> Optional[PreviewLine]:
        return self.draft.preview

    @property
    def selection_rectangle(self) -> Optional[Box]:
        return self.selection.rectangle

    def displayed_entities(self) -> list[Entity]:
        """Entities as they should be drawn, with live drag positions applied."""
        live = self.live_positions
        return [
            e.model_copy(update={"position": live[e.id]}) if e.id in live else e
            for e in self._entities.values()
        ]

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        return self._entities.get(entity_id)

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def connections_for(self, entity_id: str) -> list[Connection]:
        return [self._connections[cid] for cid in self._edges_by_entity.get(entity_id, ())]

    # --- Change Callbacks ---

    def on_change(self, callback: Callable[[], None]):
        """Register a callback for committed-state changes."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self):
        for callback in self._on_change_callbacks:
            callback()

    def _notify(self, level: NotificationLevel, message: str):
        self._notifier.notify(Notification(level, message))

    def _announce_selection(self, selected: frozenset[str]):
        if self._accessibility is None:
            return
        if not selected:
            text = "No entities selected"
        elif len(selected) == 1:
            entity = self._entities.get(next(iter(selected)))
            text = f"Selected {entity.kind.value} {entity.name}" if entity else "1 entity selected"
        else:
            text = f"{len(selected)} entities selected"
        self._accessibility(text)

    # --- Index Management ---

    def _index_entity(self, entity: Entity):
        self._entities[entity.id] = entity
        self._edges_by_entity.setdefault(entity.id, set())

    def _unindex_entity(self, entity_id: str) -> Optional[Entity]:
        self._edges_by_entity.pop(entity_id, None)
        return self._entities.pop(entity_id, None)

    def _index_connection(self, connection: Connection):
        self._connections[connection.id] = connection
        self._edges_by_entity.setdefault(connection.source, set()).add(connection.id)
        self._edges_by_entity.setdefault(connection.target, set()).add(connection.id)

    def _unindex_connection(self, connection_id: str) -> Optional[Connection]:
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            for endpoint in (connection.source, connection.target):
                if endpoint in self._edges_by_entity:
                    self._edges_by_entity[endpoint].discard(connection_id)
        return connection

    def _rebuild_indexes(self, entities: Iterable[Entity], connections: Iterable[Connection]):
        self._entities.clear()
        self._connections.clear()
        self._edges_by_entity.clear()
        for entity in entities:
            self._index_entity(entity)
        for connection in connections:
            self._index_connection(connection)

    def _swap_entity_id(self, old_id: str, entity: Entity):
        """Replace a provisional entity with the persisted one."""
        self._unindex_entity(old_id)
        self._index_entity(entity)
        if old_id == entity.id:
            return
        for connection in list(self._connections.values()):
            if connection.touches(old_id):
                self._unindex_connection(connection.id)
                self._index_connection(connection.model_copy(update={
                    "source": entity.id if connection.source == old_id else connection.source,
                    "target": entity.id if connection.target == old_id else connection.target,
                }))
        self.selection.rename(old_id, entity.id)
        self.history.alias(old_id, entity.id)

    def _drop_provisional_entity(self, entity_id: str):
        """Roll back a failed create together with every edge drawn to it meanwhile."""
        for connection_id in list(self._edges_by_entity.get(entity_id, ())):
            self._unindex_connection(connection_id)
        self._unindex_entity(entity_id)
        self.selection.discard([entity_id])

    # --- In-flight Creates ---
    # Follow-up commits on a provisional item wait for its store id, so
    # the stores never see a provisional id.

    def _begin_pending(self, item_id: str):
        self._pending[item_id] = asyncio.get_running_loop().create_future()

    def _finish_pending(self, item_id: str, persisted: Optional[Entity | Connection]):
        future = self._pending.pop(item_id, None)
        if future is not None and not future.done():
            future.set_result(persisted.id if persisted is not None else None)

    async def _settled_id(self, item_id: str) -> Optional[str]:
        """The store id of `item_id`, or None if its create failed."""
        future = self._pending.get(item_id)
        if future is not None:
            return await asyncio.shield(future)
        return self.history.resolve(item_id)

    # --- Loading ---

    async def load(self):
        """Replace local state with the stores' contents."""
        try:
            entities = await self._entity_store.list_all()
            connections = await self._connection_store.list_all()
        except Exception as e:
            logger.warning("Loading the structure failed", exc_info=True)
            self._notify(NotificationLevel.ERROR, "Failed to load structure")
            raise PersistenceError(f"Failed to load structure: {e}") from e
        self.abort()
        self._rebuild_indexes(entities, connections)
        self.selection.clear()
        self.history.clear()
        self._detail = None
        logger.info("Loaded %d entities and %d connections", len(entities), len(connections))
        self._notify_change()

    def structure(self, name: str = "Untitled Structure") -> Structure:
        return Structure(
            name=name,
            entities=self.entities,
            connections=self.connections,
            metadata=StructureMetadata(grid_size=self.config.grid_size, show_grid=self.show_grid),
        )

    def audit(self) -> list[ValidationIssue]:
        return validate_structure(self.structure(), self.entity_size)

    def summary(self) -> StructureSummary:
        return summarize_structure(self.entities, self.connections)

    # --- Validation Helpers ---

    def check_placement(self, entity: Entity, position: Point) -> list[Violation]:
        """Placement violations for `entity` at `position` against committed state."""
        violations = validate_placement(
            entity, position, self._entities.values(), self.entity_size, self.config.overlap_tolerance
        )
        inside = clamp_to_bounds(position, self.canvas_size, self.entity_size)
        if inside != position and not any(v.code == ViolationCode.OUT_OF_BOUNDS for v in violations):
            violations.insert(0, Violation(
                ViolationCode.OUT_OF_BOUNDS, "Entity must be within canvas bounds", entity.id
            ))
        return violations

    def check_moves(self, positions: dict[str, Point]) -> list[Violation]:
        """Violations of moving several entities at once."""
        violations = [
            Violation(ViolationCode.UNKNOWN_ENTITY, "Invalid entity selection", eid)
            for eid in positions if eid not in self._entities
        ]
        found = check_positions(self._entities, positions, self.config)
        return violations + [v for per_entity in found.values() for v in per_entity]

    def check_connection(self, source: str, target: str) -> list[Violation]:
        return validate_connection(source, target, self._entities.values(), self._connections.values())

    def _reject(self, violations: list[Violation], action: str) -> OperationResult:
        self.banner.show(violations)
        messages = "; ".join(dict.fromkeys(v.message for v in violations))
        logger.info("%s rejected: %s", action, messages)
        self._notify(NotificationLevel.WARNING, messages)
        return OperationResult(False, violations)

    def _persistence_failed(self, action: str, error: Exception):
        logger.warning("%s failed, local change rolled back: %s", action, error, exc_info=True)
        self._notify(NotificationLevel.ERROR, f"Failed to {action}")

    # --- Commit Primitives ---
    # Optimistic local update, then persistence, then reconcile or roll back.
    # They do not validate and do not record history.

    async def _commit_add(
        self,
        kind: EntityKind,
        name: str,
        position: Point,
        properties: dict[str, Any],
    ) -> Optional[Entity]:
        provisional = Entity(kind=kind, name=name, position=position, properties=dict(properties))
        self._index_entity(provisional)
        self._begin_pending(provisional.id)
        self._notify_change()
        created: Optional[Entity] = None
        try:
            created = await self._entity_store.create(kind, name, position, dict(properties))
        except Exception as e:
            self._drop_provisional_entity(provisional.id)
            self._notify_change()
            self._persistence_failed("add entity", e)
            return None
        finally:
            self._finish_pending(provisional.id, created)

        local = self._entities.get(provisional.id)
        if local is None:
            # deleted while in flight; that delete removes it from the store
            self.history.alias(provisional.id, created.id)
            return None
        if local != provisional:
            # edited while in flight; those commits write the store themselves
            created = created.model_copy(update={
                "name": local.name, "position": local.position, "properties": local.properties,
            })
        self._swap_entity_id(provisional.id, created)
        self._notify_change()
        return created

    async def _commit_update(self, entity_id: str, patch: dict[str, Any]) -> Optional[Entity]:
        entity_id = self.history.resolve(entity_id)
        before = self._entities.get(entity_id)
        if before is None:
            return None
        self._entities[entity_id] = before.model_copy(update=patch)
        self._notify_change()
        try:
            store_id = await self._settled_id(entity_id)
            if store_id is None:
                return None
            updated = await self._entity_store.update(store_id, patch)
        except Exception as e:
            current = self.history.resolve(entity_id)
            if current in self._entities:
                self._entities[current] = before.model_copy(update={"id": current})
            self._notify_change()
            self._persistence_failed("update entity", e)
            return None
        if store_id in self._entities:
            self._entities[store_id] = updated
        self._notify_change()
        return updated

    async def _commit_moves(self, positions: dict[str, Point]) -> bool:
        positions = {self.history.resolve(eid): p for eid, p in positions.items()}
        before = {eid: self._entities[eid].position for eid in positions if eid in self._entities}
        for eid in before:
            self._entities[eid] = self._entities[eid].model_copy(update={"position": positions[eid]})
        self._notify_change()

        # store id -> position before the move
        persisted: dict[str, Point] = {}
        try:
            for eid in before:
                store_id = await self._settled_id(eid)
                if store_id is None:
                    continue
                updated = await self._entity_store.update(store_id, {"position": positions[eid]})
                persisted[store_id] = before[eid]
                if store_id in self._entities:
                    self._entities[store_id] = updated
        except Exception as e:
            # roll back locally and compensate the moves the store already took
            for eid, original in before.items():
                key = self.history.resolve(eid)
                current = self._entities.get(key)
                if current is not None and current.position == positions[eid]:
                    self._entities[key] = current.model_copy(update={"position": original})
            for store_id, original in persisted.items():
                try:
                    await self._entity_store.update(store_id, {"position": original})
                except Exception:
                    logger.warning("Could not restore position of %s", store_id, exc_info=True)
            self._notify_change()
            self._persistence_failed("move entities", e)
            return False
        self._notify_change()
        return True

    async def _commit_connect(
        self,
        source: str,
        target: str,
        kind: ConnectionKind,
        label: str,
    ) -> Optional[Connection]:
        provisional = Connection(source=source, target=target, kind=kind, label=label)
        self._index_connection(provisional)
        self._begin_pending(provisional.id)
        self._notify_change()
        created: Optional[Connection] = None
        try:
            source_id = await self._settled_id(source)
            target_id = await self._settled_id(target)
            if source_id is None or target_id is None or provisional.id not in self._connections:
                # an endpoint's create failed, or the edge was removed while waiting for it
                logger.info("Connection %s dropped before it reached the store", provisional.id)
                self._unindex_connection(provisional.id)
                self._notify_change()
                return None
            created = await self._connection_store.create(source_id, target_id, kind, label)
        except Exception as e:
            self._unindex_connection(provisional.id)
            self._notify_change()
            self._persistence_failed("create connection", e)
            return None
        finally:
            self._finish_pending(provisional.id, created)

        if provisional.id not in self._connections:
            # deleted while in flight; that delete removes it from the store
            self.history.alias(provisional.id, created.id)
            return None
        self._unindex_connection(provisional.id)
        self._index_connection(created)
        self.history.alias(provisional.id, created.id)
        self._notify_change()
        return created

    async def _commit_delete(
        self,
        entity_ids: Sequence[str],
        connection_ids: Sequence[str] = (),
    ) -> Optional[tuple[list[Entity], list[Connection]]]:
        """
        Delete entities, every connection touching them, and extra connections.

        Returns what was removed, or None if the store failed; on failure
        only the deletions the store did not take are restored locally.
        """
        entities = [self._entities[eid] for eid in entity_ids if eid in self._entities]
        wanted = {cid for cid in connection_ids if cid in self._connections}
        for entity in entities:
            wanted |= self._edges_by_entity.get(entity.id, set())
        connections = [self._connections[cid] for cid in self._connections if cid in wanted]
        if not entities and not connections:
            return None

        for connection in connections:
            self._unindex_connection(connection.id)
        for entity in entities:
            self._unindex_entity(entity.id)
        self.selection.discard(e.id for e in entities)
        self._notify_change()

        done: set[str] = set()
        try:
            for connection in connections:
                store_id = await self._settled_id(connection.id)
                if store_id is not None:
                    await self._delete_quietly(self._connection_store, store_id)
                done.add(connection.id)
            for entity in entities:
                store_id = await self._settled_id(entity.id)
                if store_id is not None:
                    await self._delete_quietly(self._entity_store, store_id)
                done.add(entity.id)
        except Exception as e:
            # restore under the store ids of creates that settled meanwhile
            resolve = self.history.resolve
            for entity in entities:
                if entity.id not in done:
                    self._index_entity(entity.model_copy(update={"id": resolve(entity.id)}))
            for connection in connections:
                restored = connection.model_copy(update={
                    "id": resolve(connection.id),
                    "source": resolve(connection.source),
                    "target": resolve(connection.target),
                })
                endpoints_exist = restored.source in self._entities and restored.target in self._entities
                if connection.id not in done and endpoints_exist:
                    self._index_connection(restored)
            self._notify_change()
            self._persistence_failed("delete", e)
            return None
        return entities, connections

    @staticmethod
    async def _delete_quietly(store: EntityStore | ConnectionStore, item_id: str):
        try:
            await store.delete(item_id)
        except NotFoundError:
            logger.debug("%s was already gone from the store", item_id)

    # --- Entity Operations ---

    def preview_drop(self, kind: EntityKind, position: Point) -> list[Violation]:
        """Live feedback for dropping a new entity of `kind` at `position`."""
        candidate = Entity(kind=EntityKind(kind), position=position)
        return self.check_placement(candidate, snap(position, self.config.grid_size))

    def _free_position(self, candidate: Entity, start: Point) -> Point:
        """`start`, or the first free grid slot after it when only overlap blocks it."""
        violations = self.check_placement(candidate, start)
        if not violations or any(v.code != ViolationCode.OVERLAP for v in violations):
            return start
        free = find_free_position(
            start,
            self._entities.values(),
            self.entity_size,
            self.canvas_size,
            self.config.grid_size,
            self.config.overlap_tolerance,
        )
        return free if free is not None else start

    async def add_entity(
        self,
        kind: EntityKind,
        position: Optional[Point] = None,
        name: Optional[str] = None,
        properties: Optional[dict[str, Any]] = None,
    ) -> OperationResult:
        """
        Add an entity, snapped to the grid.

        Without a position the kind's default slot is used, or the first
        free slot after it if something already sits there. Raises
        InvalidPropertiesError for properties failing the kind's schema.
        """
        kind = EntityKind(kind)
        properties = validate_properties(kind, properties) if properties is not None else default_properties(kind)
        name = name if name is not None else DEFAULT_NAMES[kind]
        candidate = Entity(kind=kind, name=name, properties=properties)

        if position is None:
            position = self._free_position(candidate, DEFAULT_POSITIONS[kind])
        else:
            position = snap(position, self.config.grid_size)

        violations = self.check_placement(candidate, position)
        if violations:
            return self._reject(violations, f"Adding {kind.value}")

        created = await self._commit_add(kind, name, position, properties)
        if created is None:
            return OperationResult(False)
        self.history.push(AddEntityCommand(created))
        self._notify(NotificationLevel.SUCCESS, f"{kind.value} added to structure")
        return OperationResult(True, entities=[created])

    async def update_entity(
        self,
        entity_id: str,
        name: Optional[str] = None,
        properties: Optional[dict[str, Any]] = None,
    ) -> OperationResult:
        """Rename an entity and/or replace its properties."""
        entity = self._entities.get(entity_id)
        if entity is None:
            return OperationResult(False, [Violation(ViolationCode.UNKNOWN_ENTITY, "Invalid entity selection", entity_id)])
        after: dict[str, Any] = {}
        if name is not None and name != entity.name:
            after["name"] = name
        if properties is not None and properties != entity.properties:
            after["properties"] = validate_properties(entity.kind, properties)
        if not after:
            return OperationResult(True, entities=[entity])
        before = {key: getattr(entity, key) for key in after}

        updated = await self._commit_update(entity_id, after)
        if updated is None:
            return OperationResult(False)
        self.history.push(UpdateEntityCommand(entity_id, before, after))
        return OperationResult(True, entities=[updated])

    async def delete_entities(self, entity_ids: Iterable[str]) -> OperationResult:
        """Delete entities and every connection touching them, as one change."""
        ids = [eid for eid in dict.fromkeys(entity_ids) if eid in self._entities]
        if not ids:
            return OperationResult(False)
        removed = await self._commit_delete(ids)
        if removed is None:
            return OperationResult(False)
        entities, connections = removed
        self.history.push(DeleteCommand(entities, connections))
        noun = "entity" if len(entities) == 1 else "entities"
        self._notify(NotificationLevel.SUCCESS, f"Deleted {len(entities)} {noun}")
        return OperationResult(True, entities=entities)

    async def delete_selection(self) -> OperationResult:
        return await self.delete_entities(self.selection.selected)

    # --- Connection Operations ---

    async def add_connection(self, source: str, target: str) -> OperationResult:
        """Validate and commit a connection; kind and label are derived."""
        result = propose_connection(source, target, self._entities.values(), self._connections.values())
        if result.outcome == DraftOutcome.REJECTED:
            return self._reject(result.violations, "Connection")
        return await self._commit_proposal(result)

    async def _commit_proposal(self, result: DraftResult) -> OperationResult:
        proposal = result.proposal
        created = await self._commit_connect(proposal.source, proposal.target, proposal.kind, proposal.label)
        if created is None:
            return OperationResult(False)
        self.history.push(ConnectCommand(created))
        self._notify(NotificationLevel.SUCCESS, "Connection created")
        return OperationResult(True, connection=created)

    async def delete_connection(self, connection_id: str) -> OperationResult:
        connection = self._connections.get(connection_id)
        if connection is None:
            return OperationResult(False)
        removed = await self._commit_delete([], [connection_id])
        if removed is None:
            return OperationResult(False)
        self._detail = None
        self.history.push(DeleteCommand([], [connection]))
        return OperationResult(True, connection=connection)

    def describe_connection(self, connection_id: str) -> Optional[ConnectionDetail]:
        connection = self._connections.get(connection_id)
        if connection is None:
            return None
        return describe_connection(connection, self._entities)

    def close_detail(self):
        self._detail = None

    # --- Clipboard ---

    def copy(self) -> int:
        """Capture the selected entities; returns how many were copied."""
        self._clipboard = [self._entities[eid].model_copy(deep=True) for eid in self._entities if eid in self.selection]
        self._paste_count = 0
        if self._clipboard:
            self._notify(NotificationLevel.INFO, f"Copied {len(self._clipboard)} entities")
        return len(self._clipboard)

    async def paste(self) -> OperationResult:
        """
        Paste copies of the clipboard offset from the originals.

        A copy landing on another entity moves to the next free grid
        slot; copies that still fail placement are skipped. The pasted
        entities become the selection and undo as one step.
        """
        if not self._clipboard:
            return OperationResult(False)
        self._paste_count += 1
        offset = self.config.paste_offset * self._paste_count
        created: list[Entity] = []
        skipped: list[Violation] = []
        for original in self._clipboard:
            copy = Entity(kind=original.kind, name=f"{original.name} (Copy)", properties=dict(original.properties))
            position = clamp_to_bounds(
                snap(original.position.offset(offset, offset), self.config.grid_size),
                self.canvas_size,
                self.entity_size,
                self.config.grid_size,
            )
            position = self._free_position(copy, position)
            violations = self.check_placement(copy, position)
            if violations:
                skipped.extend(violations)
                continue
            entity = await self._commit_add(copy.kind, copy.name, position, copy.properties)
            if entity is not None:
                created.append(entity)

        if skipped:
            self.banner.show(skipped)
        if not created:
            self._notify(NotificationLevel.WARNING, "Nothing could be pasted here")
            return OperationResult(False, skipped)
        self.history.push(CompoundCommand([AddEntityCommand(e) for e in created], label="paste"))
        self.selection.select_many(e.id for e in created)
        self._notify(NotificationLevel.SUCCESS, f"Pasted {len(created)} entities")
        return OperationResult(True, skipped, entities=created)

    # --- Selection Commands ---

    def select_all(self):
        self.selection.select_all(self._entities.keys())

    def clear_selection(self):
        self.selection.clear()

    # --- Layout Commands ---

    async def _commit_layout(self, proposal: dict[str, Point], action: str) -> OperationResult:
        grid_aligned = snap_positions(proposal, self.config.grid_size)
        positions = {
            eid: clamp_to_bounds(p, self.canvas_size, self.entity_size, self.config.grid_size)
            for eid, p in grid_aligned.items()
            if eid in self._entities and p != self._entities[eid].position
        }
        if not positions:
            return OperationResult(True)
        violations = self.check_moves(positions)
        if violations:
            return self._reject(violations, action)
        before = {eid: self._entities[eid].position for eid in positions}
        if not await self._commit_moves(positions):
            return OperationResult(False)
        self.history.push(MoveCommand(before, positions, label=action))
        return OperationResult(True, entities=[self._entities[eid] for eid in positions if eid in self._entities])

    async def align_selection(self, alignment: str) -> OperationResult:
        proposal = align_entities(self._entities.values(), self.selection.selected, alignment)
        return await self._commit_layout(proposal, f"align {alignment}")

    async def distribute_selection(self, axis: str = "horizontal") -> OperationResult:
        proposal = distribute_entities(self._entities.values(), self.selection.selected, axis)
        return await self._commit_layout(proposal, f"distribute {axis}")

    async def nudge(self, dx: float, dy: float) -> OperationResult:
        """Move the whole selection by (dx, dy), all or nothing."""
        if self._interaction != Interaction.IDLE:
            return OperationResult(False)
        plan = plan_nudge(self._entities, self.selection.selected, dx, dy, self.config)
        if plan.violations:
            return self._reject(plan.violations, "Nudge")
        if not plan.moved:
            return OperationResult(True)
        after = {eid: moved[1] for eid, moved in plan.moved.items()}
        if not await self._commit_moves(after):
            return OperationResult(False)
        self.history.push(MoveCommand({eid: moved[0] for eid, moved in plan.moved.items()}, after, label="nudge"))
        return OperationResult(True, entities=[self._entities[eid] for eid in after if eid in self._entities])

    # --- History ---

    async def undo(self) -> bool:
        if self._interaction != Interaction.IDLE or not self.history.can_undo:
            return False
        if not await self.history.undo(self):
            self._notify(NotificationLevel.WARNING, "That change can no longer be undone")
            return False
        return True

    async def redo(self) -> bool:
        if self._interaction != Interaction.IDLE or not self.history.can_redo:
            return False
        if not await self.history.redo(self):
            self._notify(NotificationLevel.WARNING, "That change can no longer be redone")
            return False
        return True

    # --- View Commands ---

    def toggle_grid(self) -> bool:
        """Toggle grid visibility; snapping stays on."""
        self.show_grid = not self.show_grid
        return self.show_grid

    def zoom_in(self) -> Viewport:
        return self.viewport.zoom_in()

    def zoom_out(self) -> Viewport:
        return self.viewport.zoom_out()

    def reset_view(self) -> Viewport:
        return self.viewport.reset()

    def wheel(self, event: WheelEvent) -> Viewport:
        if self._interaction == Interaction.PANNING:
            return self.viewport.viewport
        return self.viewport.wheel(event.delta_x, event.delta_y, event.point, event.modifiers.multi_select)

    # --- Advice and Export ---

    async def suggestions(self) -> list[Suggestion]:
        if self._advisor is None:
            return []
        try:
            return await self._advisor.generate(self.entities, self.connections)
        except Exception:
            logger.warning("Suggestion generation failed", exc_info=True)
            self._notify(NotificationLevel.ERROR, "Could not load suggestions")
            return []

    async def apply_suggestion_action(self, action: SuggestionAction) -> OperationResult:
        """Run a suggestion's action through the engine's own operations."""
        if action.type == ActionType.ADD_ENTITY:
            return await self.add_entity(EntityKind(action.data["kind"]))
        if action.type == ActionType.ADD_CONNECTION:
            return await self.add_connection(action.data["source"], action.data["target"])
        self._notify(NotificationLevel.INFO, action.data.get("text", action.label))
        return OperationResult(True)

    async def export(self, fmt: str = "json", surface: Optional[RenderSurface] = None) -> bytes:
        """Export the committed structure; raises ExportError on failure."""
        if self._exporter is None:
            raise ExportError("No exporter configured")
        if surface is None:
            surface = RenderSurface(
                width=self.config.canvas_width,
                height=self.config.canvas_height,
                entity_width=self.config.entity_width,
                entity_height=self.config.entity_height,
                grid_size=self.config.grid_size,
                show_grid=self.show_grid,
            )
        try:
            data = await self._exporter.export(self.entities, self.connections, surface, fmt)
        except ExportError as e:
            self._notify(NotificationLevel.WARNING, str(e))
            raise
        except Exception as e:
            self._notify(NotificationLevel.ERROR, "Export failed. Please try again.")
            raise ExportError(f"Export failed: {e}") from e
        self._notify(NotificationLevel.SUCCESS, f"Structure exported as {fmt.upper()}")
        return data

    # --- Pointer Input ---

    def hit_test(self, canvas_point: Point) -> HitTarget:
        return hit_test(
            canvas_point,
            self.entities,
            self.connections,
            self.entity_size,
            self.config.handle_size,
            self.config.edge_hit_tolerance,
        )

    def _target(self, event: PointerEvent) -> HitTarget:
        if event.target is not None:
            return event.target
        return self.hit_test(self.viewport.to_canvas(event.point))

    def _attach(self, interaction: Interaction, on_move, on_up):
        self._interaction = interaction
        self._listeners = [
            self.bus.listen(POINTER_MOVE, on_move),
            self.bus.listen(POINTER_UP, on_up),
            self.bus.listen(POINTER_LEAVE, self._on_leave),
        ]
        logger.debug("Entered %s", interaction.value)

    def _detach(self):
        for listener in self._listeners:
            listener.close()
        self._listeners = []
        if self._interaction != Interaction.IDLE:
            logger.debug("Left %s", self._interaction.value)
        self._interaction = Interaction.IDLE

    async def pointer_down(self, event: PointerEvent) -> Interaction:
        """
        Start whatever operation the press begins.

        Ignored while another operation is active. Returns the resulting
        interaction mode.
        """
        if self._interaction != Interaction.IDLE:
            return self._interaction
        canvas_point = self.viewport.to_canvas(event.point)
        target = self._target(event)
        mods = event.modifiers

        if (
            event.button == PointerButton.MIDDLE
            or (event.button == PointerButton.PRIMARY and mods.alt)
            or (event.button == PointerButton.PRIMARY and mods.multi_select and target.kind == HitKind.BACKGROUND)
        ):
            self.viewport.begin_pan(event.point)
            self._attach(Interaction.PANNING, self._on_pan_move, self._on_pan_up)
            return self._interaction
        if event.button != PointerButton.PRIMARY:
            return self._interaction

        if target.kind == HitKind.HANDLE and target.item_id in self._entities:
            self.draft.begin(target.item_id)
            self.draft.move(canvas_point, self._entities)
            self._attach(Interaction.DRAFTING, self._on_draft_move, self._on_draft_up)
        elif target.kind == HitKind.ENTITY and target.item_id in self._entities:
            self.selection.click(target.item_id, mods.multi_select)
            if target.item_id in self.selection:
                self.drag.begin(target.item_id, canvas_point, self._entities, self.selection.selected)
                self._attach(Interaction.DRAGGING, self._on_drag_move, self._on_drag_up)
        elif target.kind == HitKind.CONNECTION:
            self._detail = self.describe_connection(target.item_id)
        else:
            self._rect_moved = False
            self.selection.begin_rectangle(canvas_point)
            self._attach(Interaction.SELECTING, self._on_select_move, self._on_select_up)
        return self._interaction

    async def pointer_move(self, event: PointerEvent):
        await self.bus.emit(POINTER_MOVE, event)

    async def pointer_up(self, event: PointerEvent) -> Any:
        """
        Finish the active operation.

        Returns its outcome (a DragResult, DraftResult, OperationResult or
        None). A pointer-up with no operation in progress is ignored.
        """
        self._last_result = None
        await self.bus.emit(POINTER_UP, event)
        result, self._last_result = self._last_result, None
        return result

    async def pointer_leave(self, event: Optional[PointerEvent] = None):
        await self.bus.emit(POINTER_LEAVE, event)

    async def key_down(self, event: KeyEvent) -> Optional[str]:
        return await self.keyboard.dispatch(event)

    # drag

    def _on_drag_move(self, event: PointerEvent):
        self.drag.move(self.viewport.to_canvas(event.point), self._entities)

    async def _on_drag_up(self, event: PointerEvent):
        try:
            self.drag.move(self.viewport.to_canvas(event.point), self._entities)
            result: DragResult = self.drag.end(self._entities)
        finally:
            self._detach()
        self._last_result = result
        if result.reverted:
            self.banner.show(result.violations)
            self._notify(NotificationLevel.WARNING, "; ".join(dict.fromkeys(v.message for v in result.violations)))
        if not result.moved:
            return
        after = {eid: moved[1] for eid, moved in result.moved.items()}
        if await self._commit_moves(after):
            self.history.push(MoveCommand({eid: moved[0] for eid, moved in result.moved.items()}, after))

    # connection draft

    def _on_draft_move(self, event: PointerEvent):
        self.draft.move(self.viewport.to_canvas(event.point), self._entities)

    async def _on_draft_up(self, event: PointerEvent):
        try:
            target = self._target(event)
            target_id = target.item_id if target.kind in (HitKind.ENTITY, HitKind.HANDLE) else None
            result = self.draft.release(target_id, self._entities, self._connections.values())
        finally:
            self._detach()
        self._last_result = result
        if result.outcome == DraftOutcome.REJECTED:
            self._reject(result.violations, "Connection")
        elif result.outcome == DraftOutcome.COMMITTED:
            # state may have changed since release; validate again right before commit
            recheck = self.check_connection(result.proposal.source, result.proposal.target)
            if recheck:
                self._reject(recheck, "Connection")
                self._last_result = DraftResult(DraftOutcome.REJECTED, violations=recheck)
                return
            await self._commit_proposal(result)

    # pan

    def _on_pan_move(self, event: PointerEvent):
        self.viewport.pan_move(event.point)

    def _on_pan_up(self, event: PointerEvent):
        self.viewport.pan_move(event.point)
        self.viewport.end_pan()
        self._detach()
        self._last_result = self.viewport.viewport

    # rectangle selection

    def _on_select_move(self, event: PointerEvent):
        self._rect_moved = True
        self.selection.update_rectangle(self.viewport.to_canvas(event.point), self._entities.values())

    def _on_select_up(self, event: PointerEvent):
        try:
            if self._rect_moved:
                self.selection.update_rectangle(self.viewport.to_canvas(event.point), self._entities.values())
                self.selection.end_rectangle()
            else:
                # a plain click on the background deselects
                self.selection.end_rectangle()
                if not event.modifiers.multi_select:
                    self.selection.clear()
                self._detail = None
        finally:
            self._detach()
        self._last_result = self.selection.selected

    # abort

    def _on_leave(self, event: Optional[PointerEvent]):
        self.abort()

    def abort(self) -> Interaction:
        """
        Abandon the active operation and restore the state before it.

        Returns the interaction that was aborted.
        """
        aborted = self._interaction
        try:
            if aborted == Interaction.DRAGGING:
                self.drag.cancel()
            elif aborted == Interaction.DRAFTING:
                self.draft.cancel()
            elif aborted == Interaction.PANNING:
                self.viewport.cancel_pan()
            elif aborted == Interaction.SELECTING:
                self.selection.cancel_rectangle()
        finally:
            self._detach()
        if aborted != Interaction.IDLE:
            logger.debug("Aborted %s", aborted.value)
        return aborted

    async def escape(self):
        """Abort any operation, then clear the selection."""
        self.abort()
        self._detail = None
        self.selection.clear()
