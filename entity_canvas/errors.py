"""
Exception types raised by the canvas engine and its collaborators.

Recoverable rule violations are never raised; they are returned as
``Violation`` lists. These exceptions cover collaborator failures and
programming errors at the package boundary.
"""


class CanvasError(Exception):
    """Base class for all canvas engine errors."""


class NotFoundError(CanvasError, LookupError):
    """An entity or connection id does not resolve."""

    def __init__(self, kind: str, item_id: str):
        super().__init__(f"{kind} with id {item_id} not found")
        self.kind = kind
        self.item_id = item_id


class PersistenceError(CanvasError):
    """A persistence collaborator call failed."""


class InvalidPropertiesError(CanvasError, ValueError):
    """A property patch does not fit the entity kind's schema."""


class ExportError(CanvasError):
    """An export could not be produced."""


class RuleViolationError(CanvasError, ValueError):
    """Raised by services that must refuse a change breaking a placement or connection rule."""

    def __init__(self, violations):
        self.violations = list(violations)
        super().__init__("; ".join(v.message for v in self.violations) or "Rule violation")
