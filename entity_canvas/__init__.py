"""
Entity Canvas - headless interactive canvas engine for entity structures.

This package provides the geometry, validation rules and interaction
state machines of the canvas, plus the collaborators the engine talks
to (stores, advisor, exporter) so that a UI host, the CLI and the
backend share a single source of truth for all structure logic.
"""

from .models import (
    # Enums
    EntityKind,
    ConnectionKind,
    # Core models
    Point,
    Entity,
    Connection,
    StructureMetadata,
    Structure,
    # Request models (for API)
    CreateEntityRequest,
    UpdateEntityRequest,
    CreateConnectionRequest,
)

from .config import CanvasConfig, load_config
from .errors import (
    CanvasError, NotFoundError, PersistenceError, InvalidPropertiesError, ExportError, RuleViolationError,
)
from .geometry import Size, Box, Viewport, HitKind, HitTarget, snap, clamp_to_bounds, overlaps
from .validation import (
    Violation, ViolationCode, validate_placement, validate_connection,
    validate_structure, ValidationIssue, IssueSeverity,
)
from .analysis import summarize_structure, find_connected_components
from .layout import align_entities, distribute_entities
from .events import Modifiers, PointerButton, PointerEvent, WheelEvent, KeyEvent, InputBus
from .engine import CanvasEngine, Interaction, OperationResult
from .store import InMemoryEntityStore, InMemoryConnectionStore
from .http_store import ApiClient, HttpEntityStore, HttpConnectionStore
from .suggestions import RuleBasedAdvisor, Suggestion, SuggestionAction
from .export import StructureExporter, RenderSurface
from .notifications import Notification, NotificationLevel, LoggingNotifier, RecordingNotifier
from .logging import setup_logging, get_logger

__all__ = [
    # Enums
    "EntityKind",
    "ConnectionKind",
    # Models
    "Point",
    "Entity",
    "Connection",
    "StructureMetadata",
    "Structure",
    # Request models
    "CreateEntityRequest",
    "UpdateEntityRequest",
    "CreateConnectionRequest",
    # Config and errors
    "CanvasConfig",
    "load_config",
    "CanvasError",
    "NotFoundError",
    "PersistenceError",
    "InvalidPropertiesError",
    "ExportError",
    "RuleViolationError",
    # Geometry
    "Size",
    "Box",
    "Viewport",
    "HitKind",
    "HitTarget",
    "snap",
    "clamp_to_bounds",
    "overlaps",
    # Validation
    "Violation",
    "ViolationCode",
    "validate_placement",
    "validate_connection",
    "validate_structure",
    "ValidationIssue",
    "IssueSeverity",
    # Analysis and layout
    "summarize_structure",
    "find_connected_components",
    "align_entities",
    "distribute_entities",
    # Input
    "Modifiers",
    "PointerButton",
    "PointerEvent",
    "WheelEvent",
    "KeyEvent",
    "InputBus",
    # Engine
    "CanvasEngine",
    "Interaction",
    "OperationResult",
    # Collaborators
    "InMemoryEntityStore",
    "InMemoryConnectionStore",
    "ApiClient",
    "HttpEntityStore",
    "HttpConnectionStore",
    "RuleBasedAdvisor",
    "Suggestion",
    "SuggestionAction",
    "StructureExporter",
    "RenderSurface",
    "Notification",
    "NotificationLevel",
    "LoggingNotifier",
    "RecordingNotifier",
    # Logging
    "setup_logging",
    "get_logger",
]
