"""
Structure validation - placement rules, connection rules and whole-graph audits.

`validate_placement` and `validate_connection` are the rule engine used
for live feedback and at commit time. They return every applicable
violation, never just the first. `validate_structure` audits a committed
structure for the same invariants.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, TYPE_CHECKING

from .geometry import Size, entity_box, overlaps
from .models import Connection, Entity, EntityKind, Point

if TYPE_CHECKING:
    from .models import Structure


class ViolationCategory(str, Enum):
    """Which part of the error taxonomy a violation belongs to."""
    GEOMETRY = "geometry"  # out of bounds, overlap
    GRAPH = "graph"        # duplicate edge, singleton, forbidden pair


class ViolationCode(str, Enum):
    OUT_OF_BOUNDS = "out_of_bounds"
    OVERLAP = "overlap"
    SINGLETON = "singleton"
    UNKNOWN_ENTITY = "unknown_entity"
    SELF_CONNECTION = "self_connection"
    DUPLICATE_CONNECTION = "duplicate_connection"
    TAX_RETURN_SOURCE = "tax_return_source"
    TRUST_TO_TRUST = "trust_to_trust"


_CATEGORIES = {
    ViolationCode.OUT_OF_BOUNDS: ViolationCategory.GEOMETRY,
    ViolationCode.OVERLAP: ViolationCategory.GEOMETRY,
}


@dataclass(frozen=True)
class Violation:
    """A reason a placement or connection is rejected."""
    code: ViolationCode
    message: str
    entity_id: Optional[str] = None

    @property
    def category(self) -> ViolationCategory:
        return _CATEGORIES.get(self.code, ViolationCategory.GRAPH)

    def to_dict(self) -> dict:
        result = {"code": self.code.value, "category": self.category.value, "message": self.message}
        if self.entity_id:
            result["entity_id"] = self.entity_id
        return result


DEFAULT_ENTITY_SIZE = Size(200, 150)


def validate_placement(
    candidate: Entity,
    position: Point,
    entities: Iterable[Entity],
    entity_size: Size = DEFAULT_ENTITY_SIZE,
    tolerance: float = 0.0,
) -> list[Violation]:
    """
    Check whether `candidate` may sit at `position`.

    Checks for:
    - Negative coordinates
    - Overlap with any other entity's box (the candidate itself is skipped by id)
    - A second tax return (singleton kind)

    Args:
        candidate: The entity being placed (may not be in `entities` yet)
        position: Proposed top-left position in canvas space
        entities: Current entities of the structure
        entity_size: Fixed entity box size
        tolerance: Overlap tolerance passed to geometry.overlaps

    Returns:
        List of Violation objects; empty means valid
    """
    violations: list[Violation] = []

    if position.x < 0 or position.y < 0:
        violations.append(Violation(
            ViolationCode.OUT_OF_BOUNDS,
            "Entity must be within canvas bounds",
            candidate.id,
        ))

    box = entity_box(position, entity_size)
    others = [e for e in entities if e.id != candidate.id]
    if any(overlaps(box, entity_box(e.position, entity_size), tolerance) for e in others):
        violations.append(Violation(
            ViolationCode.OVERLAP,
            "Entities cannot overlap",
            candidate.id,
        ))

    if candidate.kind == EntityKind.TAX_RETURN and any(e.kind == EntityKind.TAX_RETURN for e in others):
        violations.append(Violation(
            ViolationCode.SINGLETON,
            "Only one tax return allowed per structure",
            candidate.id,
        ))

    return violations


def validate_connection(
    from_id: str,
    to_id: str,
    entities: Iterable[Entity],
    connections: Iterable[Connection],
) -> list[Violation]:
    """
    Check whether a directed connection from `from_id` to `to_id` is legal.

    Checks for:
    - Endpoints that do not resolve to an entity
    - Self connection
    - An existing connection between the unordered pair
    - A tax return as the source
    - Trust to trust

    Kind rules are only checked when both endpoints resolve.
    """
    by_id = {e.id: e for e in entities}
    source = by_id.get(from_id)
    target = by_id.get(to_id)
    violations: list[Violation] = []

    for endpoint_id in dict.fromkeys([from_id, to_id]):
        if endpoint_id not in by_id:
            violations.append(Violation(ViolationCode.UNKNOWN_ENTITY, "Invalid entity selection", endpoint_id))

    if from_id == to_id:
        violations.append(Violation(ViolationCode.SELF_CONNECTION, "Entity cannot connect to itself", from_id))

    pair = frozenset((from_id, to_id))
    if any(c.pair == pair for c in connections):
        violations.append(Violation(
            ViolationCode.DUPLICATE_CONNECTION,
            "Connection already exists between these entities",
        ))

    if source is not None and target is not None:
        if source.kind == EntityKind.TAX_RETURN:
            violations.append(Violation(
                ViolationCode.TAX_RETURN_SOURCE,
                "A tax return cannot own other entities",
                from_id,
            ))
        if source.kind == EntityKind.TRUST and target.kind == EntityKind.TRUST:
            violations.append(Violation(
                ViolationCode.TRUST_TO_TRUST,
                "Trusts cannot directly own other trusts",
                from_id,
            ))

    return violations


# --- Whole-structure audit ---

class IssueSeverity(str, Enum):
    """Severity levels for audit issues."""
    ERROR = "error"      # Broken invariant, must be fixed
    WARNING = "warning"  # Potential problem, should review
    INFO = "info"        # Informational, may be intentional


@dataclass
class ValidationIssue:
    """A single issue found while auditing a structure."""
    severity: IssueSeverity
    message: str
    entity_id: str | None = None
    connection_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message,
        }
        if self.entity_id:
            result["entity_id"] = self.entity_id
        if self.connection_id:
            result["connection_id"] = self.connection_id
        return result


def validate_structure(
    structure: "Structure",
    entity_size: Size = DEFAULT_ENTITY_SIZE,
) -> list[ValidationIssue]:
    """
    Audit a committed structure and return a list of issues.

    Checks for:
    - Empty structure - INFO
    - Off-grid positions - ERROR
    - Overlapping entities - ERROR
    - More than one tax return - ERROR
    - Dangling connection endpoints - ERROR
    - Self connections, duplicate pairs, forbidden directions - ERROR
    - Unconnected entities - WARNING
    """
    issues: list[ValidationIssue] = []
    entities = structure.entities
    connections = structure.connections
    grid = structure.metadata.grid_size

    if not entities:
        issues.append(ValidationIssue(IssueSeverity.INFO, "Structure has no entities"))
        return issues

    for entity in entities:
        if grid > 0 and (entity.position.x % grid or entity.position.y % grid):
            issues.append(ValidationIssue(
                IssueSeverity.ERROR,
                f"Entity is not aligned to the {grid}-unit grid",
                entity_id=entity.id,
            ))

    for i, a in enumerate(entities):
        for b in entities[i + 1:]:
            if overlaps(entity_box(a.position, entity_size), entity_box(b.position, entity_size)):
                issues.append(ValidationIssue(
                    IssueSeverity.ERROR,
                    f"Entities overlap: {a.name or a.id} and {b.name or b.id}",
                    entity_id=b.id,
                ))

    tax_returns = [e for e in entities if e.kind == EntityKind.TAX_RETURN]
    for extra in tax_returns[1:]:
        issues.append(ValidationIssue(
            IssueSeverity.ERROR,
            "More than one tax return in structure",
            entity_id=extra.id,
        ))

    by_id = {e.id: e for e in entities}
    seen_pairs: set[frozenset[str]] = set()
    for connection in connections:
        for endpoint in (connection.source, connection.target):
            if endpoint not in by_id:
                issues.append(ValidationIssue(
                    IssueSeverity.ERROR,
                    f"Connection references non-existent entity: {endpoint}",
                    connection_id=connection.id,
                ))
        if connection.source == connection.target:
            issues.append(ValidationIssue(
                IssueSeverity.ERROR,
                "Self-referencing connection",
                entity_id=connection.source,
                connection_id=connection.id,
            ))
        if connection.pair in seen_pairs:
            issues.append(ValidationIssue(
                IssueSeverity.ERROR,
                f"Duplicate connection between {connection.source} and {connection.target}",
                connection_id=connection.id,
            ))
        else:
            seen_pairs.add(connection.pair)

        source = by_id.get(connection.source)
        target = by_id.get(connection.target)
        if source is not None and source.kind == EntityKind.TAX_RETURN:
            issues.append(ValidationIssue(
                IssueSeverity.ERROR,
                "Tax return used as a connection source",
                connection_id=connection.id,
            ))
        if source is not None and target is not None and source.kind == target.kind == EntityKind.TRUST:
            issues.append(ValidationIssue(
                IssueSeverity.ERROR,
                "Trust connected directly to trust",
                connection_id=connection.id,
            ))

    connected = {eid for c in connections for eid in (c.source, c.target)}
    orphans = [e for e in entities if e.id not in connected]
    if orphans and len(entities) > 1:
        labels = ", ".join(f"{e.name or e.kind.value} ({e.id})" for e in orphans)
        issues.append(ValidationIssue(
            IssueSeverity.WARNING,
            f"Unconnected entities: {labels}",
        ))

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of audit issues.

    Args:
        issues: List of validation issues

    Returns:
        Dictionary with counts by severity
    """
    errors = len([i for i in issues if i.severity == IssueSeverity.ERROR])
    return {
        "total": len(issues),
        "errors": errors,
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": errors == 0,
    }
