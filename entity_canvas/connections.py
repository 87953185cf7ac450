"""
Connection Draft State Machine.

Idle -> Drafting -> (Committed | Rejected | Cancelled) -> Idle.

A draft starts on a pointer-down over an entity's connection handle,
shows a rubber-band preview while the pointer moves, and resolves on
pointer-up. Only a release over a different entity is a commit attempt;
the machine validates it and hands back a proposal. Persisting the
proposal is the engine's job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Optional

from .geometry import Size, anchor_point
from .logging import get_logger
from .models import Connection, ConnectionKind, Entity, Point, derive_connection_kind
from .validation import Violation, ViolationCode, validate_connection

logger = get_logger("connections")


class DraftPhase(str, Enum):
    IDLE = "idle"
    DRAFTING = "drafting"


class DraftOutcome(str, Enum):
    COMMITTED = "committed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PreviewLine:
    """The rubber band from the source anchor to the pointer (canvas space)."""
    start: Point
    end: Point


@dataclass(frozen=True)
class ConnectionProposal:
    """A validated connection ready to be persisted."""
    source: str
    target: str
    kind: ConnectionKind
    label: str


@dataclass
class DraftResult:
    outcome: DraftOutcome
    proposal: Optional[ConnectionProposal] = None
    violations: list[Violation] = field(default_factory=list)


def propose_connection(
    from_id: str,
    to_id: str,
    entities: Iterable[Entity],
    connections: Iterable[Connection],
) -> DraftResult:
    """Validate a connection and derive its kind and label from the endpoints."""
    entities = list(entities)
    violations = validate_connection(from_id, to_id, entities, connections)
    if violations:
        return DraftResult(DraftOutcome.REJECTED, violations=violations)
    target = next(e for e in entities if e.id == to_id)
    kind, label = derive_connection_kind(target.kind)
    return DraftResult(DraftOutcome.COMMITTED, proposal=ConnectionProposal(from_id, to_id, kind, label))


class ConnectionDraftMachine:
    """Tracks at most one connection draft."""

    def __init__(self, entity_size: Size):
        self._entity_size = entity_size
        self._source_id: Optional[str] = None
        self._preview: Optional[PreviewLine] = None

    @property
    def phase(self) -> DraftPhase:
        return DraftPhase.IDLE if self._source_id is None else DraftPhase.DRAFTING

    @property
    def source_id(self) -> Optional[str]:
        return self._source_id

    @property
    def preview(self) -> Optional[PreviewLine]:
        return self._preview

    def begin(self, source_id: str):
        self._source_id = source_id
        self._preview = None
        logger.debug("Connection draft started from %s", source_id)

    def move(self, pointer: Point, entities: Mapping[str, Entity]) -> Optional[PreviewLine]:
        """Update the preview line; purely visual."""
        if self._source_id is None:
            return None
        source = entities.get(self._source_id)
        if source is None:
            return None
        self._preview = PreviewLine(anchor_point(source, self._entity_size), pointer)
        return self._preview

    def release(
        self,
        target_id: Optional[str],
        entities: Mapping[str, Entity],
        connections: Iterable[Connection],
    ) -> DraftResult:
        """
        Resolve the draft on pointer-up.

        `target_id` is the entity under the pointer, or None over empty
        space. Releasing on the source entity itself cancels the draft;
        the self-connection violation is reported on the result but
        nothing is committed.
        """
        source_id = self._source_id
        self._reset()
        if source_id is None:
            return DraftResult(DraftOutcome.CANCELLED)
        if target_id is None:
            logger.debug("Connection draft from %s dropped on empty space", source_id)
            return DraftResult(DraftOutcome.CANCELLED)
        if target_id == source_id:
            return DraftResult(
                DraftOutcome.CANCELLED,
                violations=[Violation(ViolationCode.SELF_CONNECTION, "Entity cannot connect to itself", source_id)],
            )
        result = propose_connection(source_id, target_id, entities.values(), connections)
        if result.outcome == DraftOutcome.REJECTED:
            logger.info(
                "Connection %s -> %s rejected: %s",
                source_id, target_id, "; ".join(v.message for v in result.violations),
            )
        return result

    def cancel(self):
        if self._source_id is not None:
            logger.debug("Connection draft from %s cancelled", self._source_id)
        self._reset()

    def _reset(self):
        self._source_id = None
        self._preview = None


# --- Read-only detail view for committed connections ---

@dataclass(frozen=True)
class ConnectionDetail:
    title: str
    summary: str
    attributes: tuple[tuple[str, str], ...]


def describe_connection(connection: Connection, entities: Mapping[str, Entity]) -> ConnectionDetail:
    """Explain what a committed connection means; presentation only."""
    source = entities.get(connection.source)
    target = entities.get(connection.target)
    source_name = source.name if source else connection.source
    target_name = target.name if target else connection.target

    if connection.kind == ConnectionKind.INCOME:
        return ConnectionDetail(
            title="Income Flow Connection",
            summary=f"{source_name} reports income to {target_name}",
            attributes=(
                ("Income Type", "Business Income"),
                ("Tax Treatment", "Schedule C/E"),
                ("Flow-through", "Yes"),
            ),
        )
    return ConnectionDetail(
        title="Ownership Connection",
        summary=f"{source_name} owns {target_name}",
        attributes=(
            ("Ownership Percentage", "100%"),
            ("Voting Rights", "Full Control"),
            ("Tax Implications", "Pass-through taxation"),
        ),
    )
