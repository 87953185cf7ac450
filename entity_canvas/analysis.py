"""
Structure analysis - graph summaries used by export, the CLI and the backend.
"""

from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .models import Connection, Entity


@dataclass
class ConnectedComponent:
    """A set of entities reachable from each other, ignoring direction."""
    entity_ids: list[str] = field(default_factory=list)
    connection_count: int = 0

    @property
    def size(self) -> int:
        return len(self.entity_ids)


@dataclass
class EntityConnectionInfo:
    """Connection counts for a single entity."""
    entity_id: str
    name: str
    incoming: int = 0   # Connections pointing to this entity
    outgoing: int = 0   # Connections starting at this entity

    @property
    def total(self) -> int:
        return self.incoming + self.outgoing


@dataclass
class StructureSummary:
    name: str
    total_entities: int
    total_connections: int
    entities_by_kind: dict[str, int]
    connections_by_kind: dict[str, int]
    connected_components: int
    most_connected: list[EntityConnectionInfo]
    unconnected: list[str]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "total_entities": self.total_entities,
            "total_connections": self.total_connections,
            "entities_by_kind": self.entities_by_kind,
            "connections_by_kind": self.connections_by_kind,
            "connected_components": self.connected_components,
            "most_connected": [
                {
                    "id": info.entity_id,
                    "name": info.name,
                    "connections": info.total,
                    "incoming": info.incoming,
                    "outgoing": info.outgoing,
                }
                for info in self.most_connected
            ],
            "unconnected": list(self.unconnected),
        }


def find_connected_components(
    entities: Sequence[Entity],
    connections: Iterable[Connection],
) -> list[ConnectedComponent]:
    """
    Find all connected components using BFS.

    Connections with a dangling endpoint are ignored.
    """
    if not entities:
        return []

    entity_ids = [e.id for e in entities]
    adjacency: dict[str, set[str]] = {eid: set() for eid in entity_ids}
    valid = [c for c in connections if c.source in adjacency and c.target in adjacency]
    for connection in valid:
        adjacency[connection.source].add(connection.target)
        adjacency[connection.target].add(connection.source)

    visited: set[str] = set()
    components: list[ConnectedComponent] = []
    for start in entity_ids:
        if start in visited:
            continue
        members: list[str] = []
        queue = deque([start])
        visited.add(start)
        while queue:
            current = queue.popleft()
            members.append(current)
            for neighbor in adjacency[current]:
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)
        member_set = set(members)
        components.append(ConnectedComponent(
            entity_ids=members,
            connection_count=sum(1 for c in valid if c.source in member_set),
        ))
    return components


def calculate_entity_connections(
    entities: Sequence[Entity],
    connections: Iterable[Connection],
) -> dict[str, EntityConnectionInfo]:
    """Map entity id to its incoming/outgoing connection counts."""
    info = {e.id: EntityConnectionInfo(entity_id=e.id, name=e.name) for e in entities}
    for connection in connections:
        if connection.source in info:
            info[connection.source].outgoing += 1
        if connection.target in info:
            info[connection.target].incoming += 1
    return info


def find_unconnected_entities(
    entities: Sequence[Entity],
    connections: Iterable[Connection],
) -> list[Entity]:
    connected = {eid for c in connections for eid in (c.source, c.target)}
    return [e for e in entities if e.id not in connected]


def summarize_structure(
    entities: Sequence[Entity],
    connections: Sequence[Connection],
    name: str = "Untitled Structure",
    top_n: int = 5,
) -> StructureSummary:
    """
    Summarize a structure: counts by kind, components and the busiest entities.

    Args:
        entities: Entities of the structure
        connections: Connections of the structure
        name: Display name used in the summary
        top_n: Number of most connected entities to include
    """
    kind_counts: dict[str, int] = defaultdict(int)
    for entity in entities:
        kind_counts[entity.kind.value] += 1

    connection_counts: dict[str, int] = defaultdict(int)
    for connection in connections:
        connection_counts[connection.kind.value] += 1

    per_entity = calculate_entity_connections(entities, connections)
    ranked = sorted(per_entity.values(), key=lambda info: info.total, reverse=True)

    return StructureSummary(
        name=name,
        total_entities=len(entities),
        total_connections=len(connections),
        entities_by_kind=dict(kind_counts),
        connections_by_kind=dict(connection_counts),
        connected_components=len(find_connected_components(entities, connections)),
        most_connected=[info for info in ranked[:top_n] if info.total > 0],
        unconnected=[e.id for e in find_unconnected_entities(entities, connections)],
    )
