"""Tests for placement and connection rules and the structure audit."""

from entity_canvas.models import Connection, EntityKind, Point, Structure, StructureMetadata
from entity_canvas.validation import (
    IssueSeverity,
    ViolationCategory,
    ViolationCode,
    validate_connection,
    validate_placement,
    validate_structure,
    validation_summary,
)


def codes(violations):
    return [v.code for v in violations]


class TestValidatePlacement:
    def test_valid_position(self, make_entity) -> None:
        existing = make_entity(EntityKind.LLC, 0, 0)
        candidate = make_entity(EntityKind.SCORP, 0, 0)
        assert validate_placement(candidate, Point(x=260, y=0), [existing]) == []

    def test_negative_coordinates(self, make_entity) -> None:
        candidate = make_entity(EntityKind.LLC, 0, 0)
        assert codes(validate_placement(candidate, Point(x=-20, y=0), [])) == [ViolationCode.OUT_OF_BOUNDS]

    def test_overlap(self, make_entity) -> None:
        existing = make_entity(EntityKind.LLC, 0, 0)
        candidate = make_entity(EntityKind.SCORP, 0, 0)
        assert codes(validate_placement(candidate, Point(x=50, y=50), [existing])) == [ViolationCode.OVERLAP]

    def test_candidate_is_excluded_by_id(self, make_entity) -> None:
        entity = make_entity(EntityKind.LLC, 0, 0)
        assert validate_placement(entity, Point(x=20, y=20), [entity]) == []

    def test_singleton_tax_return(self, make_entity) -> None:
        existing = make_entity(EntityKind.TAX_RETURN, 0, 0)
        candidate = make_entity(EntityKind.TAX_RETURN, 0, 0)
        assert codes(validate_placement(candidate, Point(x=600, y=400), [existing])) == [ViolationCode.SINGLETON]

    def test_returns_every_reason(self, make_entity) -> None:
        existing = make_entity(EntityKind.TAX_RETURN, 0, 0)
        candidate = make_entity(EntityKind.TAX_RETURN, 0, 0)
        found = codes(validate_placement(candidate, Point(x=-20, y=-20), [existing]))
        assert found == [ViolationCode.OUT_OF_BOUNDS, ViolationCode.OVERLAP, ViolationCode.SINGLETON]


class TestValidateConnection:
    def test_valid(self, make_entity) -> None:
        trust = make_entity(EntityKind.TRUST, 0, 0, entity_id="t")
        llc = make_entity(EntityKind.LLC, 400, 0, entity_id="l")
        assert validate_connection("t", "l", [trust, llc], []) == []

    def test_unknown_entity(self, make_entity) -> None:
        trust = make_entity(EntityKind.TRUST, 0, 0, entity_id="t")
        violations = validate_connection("t", "missing", [trust], [])
        assert codes(violations) == [ViolationCode.UNKNOWN_ENTITY]
        assert violations[0].entity_id == "missing"

    def test_each_unknown_endpoint_reported(self) -> None:
        violations = validate_connection("gone", "missing", [], [])
        assert codes(violations) == [ViolationCode.UNKNOWN_ENTITY, ViolationCode.UNKNOWN_ENTITY]
        assert [v.entity_id for v in violations] == ["gone", "missing"]

    def test_unknown_self_connection_reported_once(self) -> None:
        violations = validate_connection("gone", "gone", [], [])
        assert codes(violations) == [ViolationCode.UNKNOWN_ENTITY, ViolationCode.SELF_CONNECTION]

    def test_self_connection(self, make_entity) -> None:
        llc = make_entity(EntityKind.LLC, 0, 0, entity_id="l")
        violations = validate_connection("l", "l", [llc], [])
        assert codes(violations) == [ViolationCode.SELF_CONNECTION]
        assert "cannot connect to itself" in violations[0].message

    def test_duplicate_ignores_direction(self, make_entity) -> None:
        llc = make_entity(EntityKind.LLC, 0, 0, entity_id="l")
        scorp = make_entity(EntityKind.SCORP, 400, 0, entity_id="s")
        existing = Connection(source="l", target="s")
        assert codes(validate_connection("s", "l", [llc, scorp], [existing])) == [ViolationCode.DUPLICATE_CONNECTION]

    def test_tax_return_cannot_be_source(self, make_entity) -> None:
        tax = make_entity(EntityKind.TAX_RETURN, 0, 0, entity_id="x")
        llc = make_entity(EntityKind.LLC, 400, 0, entity_id="l")
        assert codes(validate_connection("x", "l", [tax, llc], [])) == [ViolationCode.TAX_RETURN_SOURCE]

    def test_trust_to_trust(self, make_entity) -> None:
        a = make_entity(EntityKind.TRUST, 0, 0, entity_id="a")
        b = make_entity(EntityKind.TRUST, 400, 0, entity_id="b")
        assert codes(validate_connection("a", "b", [a, b], [])) == [ViolationCode.TRUST_TO_TRUST]

    def test_returns_every_reason(self, make_entity) -> None:
        a = make_entity(EntityKind.TRUST, 0, 0, entity_id="a")
        b = make_entity(EntityKind.TRUST, 400, 0, entity_id="b")
        existing = Connection(source="b", target="a")
        found = codes(validate_connection("a", "b", [a, b], [existing]))
        assert found == [ViolationCode.DUPLICATE_CONNECTION, ViolationCode.TRUST_TO_TRUST]


class TestViolation:
    def test_category(self, make_entity) -> None:
        llc = make_entity(EntityKind.LLC, 0, 0, entity_id="l")
        placement = validate_placement(llc, Point(x=-20, y=0), [])[0]
        connection = validate_connection("l", "l", [llc], [])[0]
        assert placement.category == ViolationCategory.GEOMETRY
        assert connection.category == ViolationCategory.GRAPH

    def test_to_dict(self, make_entity) -> None:
        llc = make_entity(EntityKind.LLC, 0, 0, entity_id="l")
        data = validate_placement(llc, Point(x=-20, y=0), [])[0].to_dict()
        assert data == {
            "code": "out_of_bounds",
            "category": "geometry",
            "message": "Entity must be within canvas bounds",
            "entity_id": "l",
        }


class TestValidateStructure:
    def test_empty_structure(self) -> None:
        issues = validate_structure(Structure())
        assert len(issues) == 1
        assert issues[0].severity == IssueSeverity.INFO

    def test_clean_structure(self, make_entity) -> None:
        trust = make_entity(EntityKind.TRUST, 0, 0, entity_id="t")
        llc = make_entity(EntityKind.LLC, 400, 0, entity_id="l")
        structure = Structure(entities=[trust, llc], connections=[Connection(source="t", target="l")])
        assert validate_structure(structure) == []

    def test_broken_invariants_are_errors(self, make_entity) -> None:
        a = make_entity(EntityKind.TRUST, 0, 0, entity_id="a")
        b = make_entity(EntityKind.TRUST, 50, 50, entity_id="b")
        tax1 = make_entity(EntityKind.TAX_RETURN, 600, 0, entity_id="x1")
        tax2 = make_entity(EntityKind.TAX_RETURN, 600, 400, entity_id="x2")
        off_grid = make_entity(EntityKind.LLC, 1000, 605, entity_id="o")
        structure = Structure(
            entities=[a, b, tax1, tax2, off_grid],
            connections=[
                Connection(id="c1", source="a", target="b"),
                Connection(id="c2", source="x1", target="o"),
                Connection(id="c3", source="o", target="ghost"),
                Connection(id="c4", source="b", target="a"),
            ],
        )
        issues = validate_structure(structure)
        errors = [i for i in issues if i.severity == IssueSeverity.ERROR]
        messages = " | ".join(i.message for i in errors)
        assert "grid" in messages
        assert "overlap" in messages
        assert "More than one tax return" in messages
        assert "non-existent entity: ghost" in messages
        assert "Duplicate connection" in messages
        assert "Tax return used as a connection source" in messages
        assert "Trust connected directly to trust" in messages

    def test_unconnected_entities_warning(self, make_entity) -> None:
        a = make_entity(EntityKind.TRUST, 0, 0, "Family Trust")
        b = make_entity(EntityKind.LLC, 400, 0, "Holdings")
        issues = validate_structure(Structure(entities=[a, b]))
        assert [i.severity for i in issues] == [IssueSeverity.WARNING]
        assert "Family Trust" in issues[0].message

    def test_uses_structure_grid(self, make_entity) -> None:
        entity = make_entity(EntityKind.LLC, 10, 10)
        structure = Structure(entities=[entity], metadata=StructureMetadata(grid_size=10))
        assert validate_structure(structure) == []


class TestValidationSummary:
    def test_counts(self, make_entity) -> None:
        a = make_entity(EntityKind.TRUST, 0, 0)
        b = make_entity(EntityKind.LLC, 60, 60)
        summary = validation_summary(validate_structure(Structure(entities=[a, b])))
        assert summary == {"total": 2, "errors": 1, "warnings": 1, "info": 0, "valid": False}
