"""
Advisory suggestions generated from the current structure.

`RuleBasedAdvisor` is the default SuggestionProvider: a fixed set of
rules over entity kinds and connectivity. It never mutates anything;
actions attached to a suggestion are applied by the engine through its
own add-entity / add-connection operations.
"""

from __future__ import annotations

import asyncio
import uuid
from enum import Enum
from typing import Any, Optional, Sequence

from pydantic import BaseModel, Field

from .models import Connection, Entity, EntityKind
from .validation import validate_connection

MAX_SUGGESTIONS = 5


class SuggestionCategory(str, Enum):
    TIP = "tip"
    OPTIMIZATION = "optimization"
    WARNING = "warning"


class ActionType(str, Enum):
    ADD_ENTITY = "add_entity"
    ADD_CONNECTION = "add_connection"
    SHOW_INFO = "show_info"


class SuggestionAction(BaseModel):
    """
    A user-invokable action attached to a suggestion.

    `data` carries `kind` for add_entity, `source`/`target` entity ids
    for add_connection, and `text` for show_info.
    """
    id: str = Field(default_factory=lambda: f"act{uuid.uuid4().hex[:8]}")
    type: ActionType
    label: str
    data: dict[str, Any] = Field(default_factory=dict)


class Suggestion(BaseModel):
    id: str
    message: str
    category: SuggestionCategory
    related_entities: list[str] = Field(default_factory=list)
    actions: list[SuggestionAction] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        return {
            "id": self.id,
            "message": self.message,
            "type": self.category.value,
            "relatedEntities": list(self.related_entities),
            "actions": [a.model_dump(mode="json") for a in self.actions],
        }


def _add_entity_action(kind: EntityKind) -> SuggestionAction:
    return SuggestionAction(type=ActionType.ADD_ENTITY, label=f"Add {kind.value}", data={"kind": kind.value})


def _first_legal_connection(
    candidates: Sequence[Entity],
    entities: Sequence[Entity],
    connections: Sequence[Connection],
) -> Optional[tuple[Entity, Entity]]:
    """A connection touching one of `candidates` that would pass validation."""
    for loose in candidates:
        for other in entities:
            for source, target in ((other, loose), (loose, other)):
                if not validate_connection(source.id, target.id, entities, connections):
                    return source, target
    return None


def build_suggestions(
    entities: Sequence[Entity],
    connections: Sequence[Connection],
    limit: int = MAX_SUGGESTIONS,
) -> list[Suggestion]:
    """Apply the advisory rules to a structure; at most `limit` results."""
    entities = list(entities)
    connections = list(connections)
    suggestions: list[Suggestion] = []

    if not entities:
        return [Suggestion(
            id="welcome",
            message="Start with a Trust. It holds the assets the rest of the structure is built around.",
            category=SuggestionCategory.TIP,
            actions=[_add_entity_action(EntityKind.TRUST)],
        )]

    kinds = {e.kind for e in entities}

    if len(entities) == 1:
        entity = entities[0]
        suggestions.append(Suggestion(
            id=f"single-{entity.kind.value}",
            message=(
                f"A structure with a single {entity.kind.value} works, but most structures add "
                "an LLC for investment holdings or an S Corp for active business income."
            ),
            category=SuggestionCategory.OPTIMIZATION,
            related_entities=[entity.id],
            actions=[_add_entity_action(EntityKind.LLC), _add_entity_action(EntityKind.SCORP)],
        ))

    if EntityKind.TRUST in kinds and EntityKind.LLC not in kinds:
        suggestions.append(Suggestion(
            id="trust-needs-llc",
            message="The Trust has nothing to own yet. Add an LLC to hold investments and business activity.",
            category=SuggestionCategory.TIP,
            related_entities=[e.id for e in entities if e.kind == EntityKind.TRUST],
            actions=[_add_entity_action(EntityKind.LLC)],
        ))

    if EntityKind.LLC in kinds and EntityKind.SCORP not in kinds:
        suggestions.append(Suggestion(
            id="llc-needs-scorp",
            message=(
                "If you work actively in the business, an S Corp can reduce self-employment tax "
                "compared with holding it only through an LLC."
            ),
            category=SuggestionCategory.OPTIMIZATION,
            related_entities=[e.id for e in entities if e.kind == EntityKind.LLC],
            actions=[_add_entity_action(EntityKind.SCORP)],
        ))

    if len(entities) >= 2 and EntityKind.TAX_RETURN not in kinds:
        suggestions.append(Suggestion(
            id="missing-tax-return",
            message="Add a personal tax return to see where the income of each entity ends up.",
            category=SuggestionCategory.WARNING,
            actions=[_add_entity_action(EntityKind.TAX_RETURN)],
        ))

    connected = {eid for c in connections for eid in (c.source, c.target)}
    unconnected = [e for e in entities if e.id not in connected]
    if unconnected and len(entities) > 1:
        actions = []
        pair = _first_legal_connection(unconnected, entities, connections)
        if pair is not None:
            source, target = pair
            actions.append(SuggestionAction(
                type=ActionType.ADD_CONNECTION,
                label=f"Connect {source.name or source.kind.value} to {target.name or target.kind.value}",
                data={"source": source.id, "target": target.id},
            ))
        suggestions.append(Suggestion(
            id="unconnected-entities",
            message=(
                f"{len(unconnected)} entities are not connected to anything. "
                "Connect them to show ownership and income flow."
            ),
            category=SuggestionCategory.WARNING,
            related_entities=[e.id for e in unconnected],
            actions=actions,
        ))

    if len(entities) >= 3 and len(connections) >= 2:
        suggestions.append(Suggestion(
            id="good-progress",
            message="The structure is taking shape. Consider which state each entity is formed in.",
            category=SuggestionCategory.TIP,
            actions=[SuggestionAction(
                type=ActionType.SHOW_INFO,
                label="About formation states",
                data={"text": "Formation state affects fees, privacy and state income tax."},
            )],
        ))

    if len(entities) >= 4:
        suggestions.append(Suggestion(
            id="advanced-optimization",
            message="With this many entities, review how the tax elections of each entity work together.",
            category=SuggestionCategory.OPTIMIZATION,
        ))

    return suggestions[:limit]


class RuleBasedAdvisor:
    """Async SuggestionProvider backed by build_suggestions."""

    def __init__(self, latency: float = 0.0, limit: int = MAX_SUGGESTIONS):
        self._latency = latency
        self._limit = limit

    async def generate(
        self,
        entities: Sequence[Entity],
        connections: Sequence[Connection],
    ) -> list[Suggestion]:
        if self._latency > 0:
            await asyncio.sleep(self._latency)
        return build_suggestions(entities, connections, self._limit)
