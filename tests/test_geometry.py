"""Tests for grid snapping, bounds, overlap, coordinate transforms and hit testing."""

import pytest

from entity_canvas.geometry import (
    Box,
    HitKind,
    Size,
    Viewport,
    canvas_to_screen,
    clamp_to_bounds,
    grid_step,
    handle_box,
    hit_test,
    normalize_rect,
    overlaps,
    point_segment_distance,
    screen_to_canvas,
    snap,
)
from entity_canvas.models import Connection, EntityKind, Point

CANVAS = Size(1200, 800)
ENTITY = Size(200, 150)


class TestSnap:
    def test_rounds_to_nearest_multiple(self) -> None:
        assert snap(Point(x=29, y=31)) == Point(x=20, y=40)

    def test_halves_round_up(self) -> None:
        assert snap(Point(x=10, y=30)) == Point(x=20, y=40)

    def test_custom_grid(self) -> None:
        assert snap(Point(x=12, y=18), grid_size=5) == Point(x=10, y=20)

    def test_already_aligned_is_unchanged(self) -> None:
        assert snap(Point(x=200, y=400)) == Point(x=200, y=400)

    @pytest.mark.parametrize("delta, expected", [(5, 20), (-5, -20), (20, 20), (40, 40), (-30, -20), (0, 0)])
    def test_grid_step(self, delta, expected) -> None:
        assert grid_step(delta, 20) == expected


class TestClampToBounds:
    def test_keeps_whole_box_on_canvas(self) -> None:
        assert clamp_to_bounds(Point(x=1100, y=-5), CANVAS, ENTITY) == Point(x=1000, y=0)

    def test_inside_point_is_unchanged(self) -> None:
        assert clamp_to_bounds(Point(x=300, y=200), CANVAS, ENTITY) == Point(x=300, y=200)

    def test_grid_limit_rounds_down(self) -> None:
        """800 - 150 = 650 is off-grid; the grid-aware limit is 640."""
        assert clamp_to_bounds(Point(x=0, y=700), CANVAS, ENTITY) == Point(x=0, y=650)
        assert clamp_to_bounds(Point(x=0, y=700), CANVAS, ENTITY, grid_size=20) == Point(x=0, y=640)


class TestOverlaps:
    def test_intersecting_boxes(self) -> None:
        assert overlaps(Box(0, 0, 200, 150), Box(50, 50, 200, 150)) is True

    def test_touching_boxes_do_not_overlap(self) -> None:
        assert overlaps(Box(0, 0, 200, 150), Box(200, 0, 200, 150)) is False
        assert overlaps(Box(0, 0, 200, 150), Box(0, 150, 200, 150)) is False

    def test_separated_on_one_axis_is_enough(self) -> None:
        assert overlaps(Box(0, 0, 200, 150), Box(100, 300, 200, 150)) is False

    def test_tolerance_allows_small_intersection(self) -> None:
        a, b = Box(0, 0, 200, 150), Box(190, 0, 200, 150)
        assert overlaps(a, b) is True
        assert overlaps(a, b, tolerance=10) is False


class TestCoordinateTransforms:
    def test_screen_to_canvas_inverts_pan_and_zoom(self) -> None:
        viewport = Viewport(zoom=2.0, pan=Point(x=10, y=20))
        assert screen_to_canvas(Point(x=110, y=220), viewport) == Point(x=50, y=100)

    def test_round_trip(self) -> None:
        viewport = Viewport(zoom=0.5, pan=Point(x=-40, y=30))
        canvas = Point(x=123, y=456)
        back = screen_to_canvas(canvas_to_screen(canvas, viewport), viewport)
        assert back.x == pytest.approx(canvas.x)
        assert back.y == pytest.approx(canvas.y)

    def test_identity_viewport(self) -> None:
        assert screen_to_canvas(Point(x=5, y=7), Viewport()) == Point(x=5, y=7)


class TestNormalizeRect:
    def test_any_drag_direction(self) -> None:
        assert normalize_rect(Point(x=100, y=50), Point(x=0, y=0)) == Box(0, 0, 100, 50)
        assert normalize_rect(Point(x=0, y=50), Point(x=100, y=0)) == Box(0, 0, 100, 50)


class TestPointSegmentDistance:
    def test_perpendicular_distance(self) -> None:
        assert point_segment_distance(Point(x=5, y=3), Point(x=0, y=0), Point(x=10, y=0)) == pytest.approx(3)

    def test_beyond_segment_end(self) -> None:
        assert point_segment_distance(Point(x=13, y=4), Point(x=0, y=0), Point(x=10, y=0)) == pytest.approx(5)

    def test_degenerate_segment(self) -> None:
        assert point_segment_distance(Point(x=3, y=4), Point(x=0, y=0), Point(x=0, y=0)) == pytest.approx(5)


class TestHitTest:
    def test_handle_is_centred_on_right_edge(self, make_entity) -> None:
        entity = make_entity(EntityKind.LLC, 0, 0)
        assert handle_box(entity, ENTITY, 24) == Box(188, 63, 24, 24)

    def test_handle_wins_over_body(self, make_entity) -> None:
        entity = make_entity(EntityKind.LLC, 0, 0, entity_id="a")
        target = hit_test(Point(x=195, y=75), [entity], [], ENTITY)
        assert target.kind == HitKind.HANDLE
        assert target.item_id == "a"

    def test_body(self, make_entity) -> None:
        entity = make_entity(EntityKind.LLC, 0, 0, entity_id="a")
        target = hit_test(Point(x=100, y=75), [entity], [], ENTITY)
        assert target.kind == HitKind.ENTITY
        assert target.item_id == "a"

    def test_topmost_entity_wins(self, make_entity) -> None:
        below = make_entity(EntityKind.LLC, 0, 0, entity_id="below")
        above = make_entity(EntityKind.SCORP, 50, 50, entity_id="above")
        assert hit_test(Point(x=100, y=100), [below, above], [], ENTITY).item_id == "above"

    def test_connection_near_segment(self, make_entity) -> None:
        a = make_entity(EntityKind.TRUST, 0, 0, entity_id="a")
        b = make_entity(EntityKind.LLC, 400, 0, entity_id="b")
        edge = Connection(id="e1", source="a", target="b")
        target = hit_test(Point(x=300, y=78), [a, b], [edge], ENTITY)
        assert target.kind == HitKind.CONNECTION
        assert target.item_id == "e1"

    def test_background(self, make_entity) -> None:
        a = make_entity(EntityKind.TRUST, 0, 0, entity_id="a")
        b = make_entity(EntityKind.LLC, 400, 0, entity_id="b")
        edge = Connection(id="e1", source="a", target="b")
        assert hit_test(Point(x=300, y=300), [a, b], [edge], ENTITY).kind == HitKind.BACKGROUND
