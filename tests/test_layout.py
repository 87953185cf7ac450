"""Tests for alignment, distribution and free-slot search."""

from entity_canvas.geometry import Size
from entity_canvas.layout import align_entities, distribute_entities, find_free_position, snap_positions
from entity_canvas.models import EntityKind, Point


class TestAlignEntities:
    def test_left_uses_minimum_x(self, make_entity) -> None:
        a = make_entity(EntityKind.LLC, 100, 0, entity_id="a")
        b = make_entity(EntityKind.LLC, 40, 200, entity_id="b")
        result = align_entities([a, b], ["a", "b"], "left")
        assert result == {"a": Point(x=40, y=0), "b": Point(x=40, y=200)}

    def test_top_uses_minimum_y(self, make_entity) -> None:
        a = make_entity(EntityKind.LLC, 0, 100, entity_id="a")
        b = make_entity(EntityKind.LLC, 400, 60, entity_id="b")
        result = align_entities([a, b], ["a", "b"], "top")
        assert result == {"a": Point(x=0, y=60), "b": Point(x=400, y=60)}

    def test_only_selected_entities(self, make_entity) -> None:
        a = make_entity(EntityKind.LLC, 100, 0, entity_id="a")
        b = make_entity(EntityKind.LLC, 40, 200, entity_id="b")
        c = make_entity(EntityKind.LLC, 0, 400, entity_id="c")
        assert set(align_entities([a, b, c], ["a", "b"], "left")) == {"a", "b"}

    def test_needs_two_entities(self, make_entity) -> None:
        a = make_entity(EntityKind.LLC, 100, 0, entity_id="a")
        assert align_entities([a], ["a"], "left") == {}

    def test_unknown_alignment(self, make_entity) -> None:
        a = make_entity(EntityKind.LLC, 100, 0, entity_id="a")
        b = make_entity(EntityKind.LLC, 40, 200, entity_id="b")
        assert align_entities([a, b], ["a", "b"], "diagonal") == {}


class TestDistributeEntities:
    def test_horizontal_spaces_interior_evenly(self, make_entity) -> None:
        a = make_entity(EntityKind.LLC, 0, 0, entity_id="a")
        b = make_entity(EntityKind.LLC, 100, 200, entity_id="b")
        c = make_entity(EntityKind.LLC, 300, 400, entity_id="c")
        assert distribute_entities([c, a, b], ["a", "b", "c"], "horizontal") == {"b": Point(x=150, y=200)}

    def test_vertical(self, make_entity) -> None:
        a = make_entity(EntityKind.LLC, 0, 0, entity_id="a")
        b = make_entity(EntityKind.LLC, 300, 500, entity_id="b")
        c = make_entity(EntityKind.LLC, 600, 200, entity_id="c")
        d = make_entity(EntityKind.LLC, 900, 600, entity_id="d")
        result = distribute_entities([a, b, c, d], ["a", "b", "c", "d"], "vertical")
        assert result == {"c": Point(x=600, y=200), "b": Point(x=300, y=400)}

    def test_needs_three_entities(self, make_entity) -> None:
        a = make_entity(EntityKind.LLC, 0, 0, entity_id="a")
        b = make_entity(EntityKind.LLC, 300, 0, entity_id="b")
        assert distribute_entities([a, b], ["a", "b"]) == {}


class TestSnapPositions:
    def test_snaps_every_position(self) -> None:
        assert snap_positions({"a": Point(x=150, y=11)}, 20) == {"a": Point(x=160, y=20)}


class TestFindFreePosition:
    def test_start_is_free(self) -> None:
        found = find_free_position(Point(x=200, y=400), [], Size(200, 150), Size(1200, 800), 20)
        assert found == Point(x=200, y=400)

    def test_scans_row_major_past_occupied_slot(self, make_entity) -> None:
        occupied = make_entity(EntityKind.TRUST, 200, 400)
        found = find_free_position(Point(x=200, y=400), [occupied], Size(200, 150), Size(1200, 800), 20)
        assert found == Point(x=400, y=400)

    def test_full_canvas(self, make_entity) -> None:
        occupied = make_entity(EntityKind.TRUST, 0, 0)
        assert find_free_position(Point(x=0, y=0), [occupied], Size(200, 150), Size(200, 150), 20) is None
