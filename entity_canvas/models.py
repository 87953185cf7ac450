"""
Core data models for entity structures.

These models define the canonical schema shared by the engine, the
persistence collaborators and the backend:
- Entities of four fixed kinds, positioned in canvas space
- Connections between entities (using source/target naming internally)
- Per-kind property schemas
- Structure metadata for grid settings and timestamps

Field Naming Convention:
- Connections use `source` and `target` as attribute names
- JSON serialization outputs `from`/`to`, the wire names of the stores
- `from`/`to` are accepted on input and converted
- The legacy entity kind `Form1040` is accepted and stored as `TaxReturn`
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import InvalidPropertiesError


class EntityKind(str, Enum):
    """The closed set of entity kinds a structure can contain."""
    TRUST = "Trust"
    LLC = "LLC"
    SCORP = "SCorp"
    TAX_RETURN = "TaxReturn"


class ConnectionKind(str, Enum):
    """Relationship kinds, derived from the endpoint kinds."""
    OWNERSHIP = "ownership"
    INCOME = "income"


LEGACY_KIND_NAMES = {"Form1040": EntityKind.TAX_RETURN.value}

CONNECTION_LABELS = {
    ConnectionKind.OWNERSHIP: "owns",
    ConnectionKind.INCOME: "reports to",
}


def generate_entity_id() -> str:
    """Generate a unique entity ID."""
    return f"ent{uuid.uuid4().hex[:8]}"


def generate_connection_id() -> str:
    """Generate a unique connection ID."""
    return f"con{uuid.uuid4().hex[:8]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalise_kind(value: Any) -> Any:
    if isinstance(value, str):
        return LEGACY_KIND_NAMES.get(value, value)
    return value


class Point(BaseModel):
    """A point in canvas or screen space."""
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0

    def offset(self, dx: float, dy: float) -> "Point":
        return Point(x=self.x + dx, y=self.y + dy)

    def __add__(self, other: "Point") -> "Point":
        return Point(x=self.x + other.x, y=self.y + other.y)

    def __sub__(self, other: "Point") -> "Point":
        return Point(x=self.x - other.x, y=self.y - other.y)


# --- Per-kind property schemas ---

class _KindProperties(BaseModel):
    """Common base: free-form keys are kept, known keys are checked."""
    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)

    description: str = ""


class TrustProperties(_KindProperties):
    trust_type: Literal["revocable", "irrevocable"] = "revocable"
    state: str = ""


class LLCProperties(_KindProperties):
    tax_election: Literal["disregarded", "partnership", "scorp", "ccorp"] = "disregarded"
    state: str = ""
    purpose: Literal["", "real-estate", "investments", "business", "equipment"] = ""


class SCorpProperties(_KindProperties):
    industry: Literal["", "consulting", "retail", "manufacturing", "services", "technology"] = ""
    state: str = ""


class TaxReturnProperties(_KindProperties):
    filing_status: Literal["", "single", "married-joint", "married-separate", "head-of-household"] = ""
    tax_year: str = "2024"


PROPERTY_SCHEMAS: dict[EntityKind, type[_KindProperties]] = {
    EntityKind.TRUST: TrustProperties,
    EntityKind.LLC: LLCProperties,
    EntityKind.SCORP: SCorpProperties,
    EntityKind.TAX_RETURN: TaxReturnProperties,
}


def validate_properties(kind: EntityKind, properties: dict[str, Any]) -> dict[str, Any]:
    """
    Check a property map against the schema for an entity kind.

    Returns the map unchanged so callers can keep the user's keys;
    raises InvalidPropertiesError if a known key has an invalid value.
    """
    try:
        PROPERTY_SCHEMAS[EntityKind(kind)].model_validate(properties)
    except ValidationError as e:
        raise InvalidPropertiesError(f"Invalid properties for {EntityKind(kind).value}: {e}") from e
    return dict(properties)


# --- Defaults used when adding entities without explicit values ---

DEFAULT_POSITIONS: dict[EntityKind, Point] = {
    EntityKind.TRUST: Point(x=200, y=400),
    EntityKind.TAX_RETURN: Point(x=200, y=500),
    EntityKind.LLC: Point(x=400, y=300),
    EntityKind.SCORP: Point(x=60, y=300),
}

DEFAULT_NAMES: dict[EntityKind, str] = {
    EntityKind.TRUST: "Foundation",
    EntityKind.LLC: "Asset Holdings",
    EntityKind.SCORP: "Business Operations",
    EntityKind.TAX_RETURN: "Tax Blender",
}


def default_properties(kind: EntityKind) -> dict[str, Any]:
    return {"description": f"A new {EntityKind(kind).value} entity"}


class Entity(BaseModel):
    """A typed, positioned node of the structure."""
    id: str = Field(default_factory=generate_entity_id)
    kind: EntityKind
    name: str = ""
    position: Point = Field(default_factory=Point)
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("kind", mode="before")
    @classmethod
    def convert_legacy_kind(cls, value: Any) -> Any:
        return _normalise_kind(value)

    @model_validator(mode="before")
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Accept the stores' `type` field as an alias for `kind`."""
        if isinstance(data, dict) and "type" in data and "kind" not in data:
            data = dict(data)
            data["kind"] = data.pop("type")
        return data

    def typed_properties(self) -> _KindProperties:
        """The properties parsed with this entity's kind schema."""
        return PROPERTY_SCHEMAS[self.kind].model_validate(self.properties)

    def to_json_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.kind.value,
            "name": self.name,
            "position": {"x": self.position.x, "y": self.position.y},
            "properties": dict(self.properties),
        }


class Connection(BaseModel):
    """
    A directed relationship between two entities.

    Uses `source` and `target` as attribute names.
    Accepts `from`/`to` on input.
    """
    id: str = Field(default_factory=generate_connection_id)
    source: str
    target: str
    kind: ConnectionKind = ConnectionKind.OWNERSHIP
    label: str = CONNECTION_LABELS[ConnectionKind.OWNERSHIP]

    @model_validator(mode="before")
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert 'from'/'to' and 'type' fields to 'source'/'target'/'kind'."""
        if isinstance(data, dict):
            data = dict(data)
            if "from" in data and "source" not in data:
                data["source"] = data.pop("from")
            if "to" in data and "target" not in data:
                data["target"] = data.pop("to")
            if "type" in data and "kind" not in data:
                data["kind"] = data.pop("type")
        return data

    @property
    def pair(self) -> frozenset[str]:
        """The unordered endpoint pair, used for de-duplication."""
        return frozenset((self.source, self.target))

    def touches(self, entity_id: str) -> bool:
        return entity_id in (self.source, self.target)

    def to_json_dict(self) -> dict:
        return {
            "id": self.id,
            "from": self.source,
            "to": self.target,
            "type": self.kind.value,
            "label": self.label,
        }


def derive_connection_kind(target_kind: EntityKind) -> tuple[ConnectionKind, str]:
    """
    Decide the connection kind and label from the target's kind.

    Anything flowing into a tax return is income; everything else is ownership.
    """
    if EntityKind(target_kind) == EntityKind.TAX_RETURN:
        kind = ConnectionKind.INCOME
    else:
        kind = ConnectionKind.OWNERSHIP
    return kind, CONNECTION_LABELS[kind]


class StructureMetadata(BaseModel):
    """Metadata about the structure."""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    grid_size: int = 20
    show_grid: bool = True


class Structure(BaseModel):
    """
    The complete entity structure.
    This is what gets saved to/loaded from JSON files and exported.
    """
    id: str = Field(default_factory=lambda: f"structure-{uuid.uuid4().hex[:8]}")
    name: str = "Untitled Structure"
    entities: list[Entity] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)
    metadata: StructureMetadata = Field(default_factory=StructureMetadata)

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict with wire field names."""
        return {
            "id": self.id,
            "name": self.name,
            "entities": [e.to_json_dict() for e in self.entities],
            "connections": [c.to_json_dict() for c in self.connections],
            "metadata": {
                "created_at": self.metadata.created_at.isoformat(),
                "updated_at": self.metadata.updated_at.isoformat(),
                "grid_size": self.metadata.grid_size,
                "show_grid": self.metadata.show_grid,
            },
        }

    @classmethod
    def from_json_dict(cls, data: dict) -> "Structure":
        """Create a Structure from a JSON dict (handles legacy field names)."""
        meta = data.get("metadata", {})
        metadata = StructureMetadata(
            created_at=datetime.fromisoformat(meta["created_at"]) if "created_at" in meta else _utcnow(),
            updated_at=datetime.fromisoformat(meta["updated_at"]) if "updated_at" in meta else _utcnow(),
            grid_size=meta.get("grid_size", 20),
            show_grid=meta.get("show_grid", True),
        )
        return cls(
            id=data.get("id", f"structure-{uuid.uuid4().hex[:8]}"),
            name=data.get("name", "Untitled Structure"),
            entities=[Entity.model_validate(e) for e in data.get("entities", [])],
            connections=[Connection.model_validate(c) for c in data.get("connections", [])],
            metadata=metadata,
        )

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        """Get an entity by ID (O(n) - the engine keeps an index)."""
        for entity in self.entities:
            if entity.id == entity_id:
                return entity
        return None


# --- API Request Models ---

class CreateEntityRequest(BaseModel):
    """Request to create a new entity."""
    kind: EntityKind
    name: str = ""
    position: Point = Field(default_factory=Point)
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("kind", mode="before")
    @classmethod
    def convert_legacy_kind(cls, value: Any) -> Any:
        return _normalise_kind(value)

    @model_validator(mode="before")
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        if isinstance(data, dict) and "type" in data and "kind" not in data:
            data = dict(data)
            data["kind"] = data.pop("type")
        return data


class UpdateEntityRequest(BaseModel):
    """Request to update an existing entity (partial update)."""
    name: Optional[str] = None
    position: Optional[Point] = None
    properties: Optional[dict[str, Any]] = None


class CreateConnectionRequest(BaseModel):
    """Request to create a new connection."""
    source: str
    target: str
    kind: ConnectionKind = ConnectionKind.OWNERSHIP
    label: str = ""

    @model_validator(mode="before")
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert 'from'/'to' fields to 'source'/'target'."""
        if isinstance(data, dict):
            data = dict(data)
            if "from" in data and "source" not in data:
                data["source"] = data.pop("from")
            if "to" in data and "target" not in data:
                data["target"] = data.pop("to")
            if "type" in data and "kind" not in data:
                data["kind"] = data.pop("type")
        return data
