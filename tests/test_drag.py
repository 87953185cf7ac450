"""Tests for the drag controller and keyboard nudge planning."""

import pytest

from entity_canvas.drag import DragController, DragPhase, check_positions, plan_nudge
from entity_canvas.models import EntityKind, Point
from entity_canvas.validation import ViolationCode


@pytest.fixture
def entities(make_entity):
    def _build(*specs):
        return {eid: make_entity(EntityKind.LLC, x, y, entity_id=eid) for eid, x, y in specs}
    return _build


class TestDragController:
    def test_moves_whole_selection_by_same_delta(self, config, entities) -> None:
        state = entities(("a", 0, 0), ("b", 0, 200))
        drag = DragController(config)
        drag.begin("a", Point(x=10, y=10), state, {"a", "b"})
        assert drag.phase == DragPhase.DRAGGING

        live = drag.move(Point(x=410, y=10), state)
        assert live == {"a": Point(x=400, y=0), "b": Point(x=400, y=200)}
        assert drag.session.violations == {}

        result = drag.end(state)
        assert drag.phase == DragPhase.IDLE
        assert result.reverted is False
        assert result.moved == {
            "a": (Point(x=0, y=0), Point(x=400, y=0)),
            "b": (Point(x=0, y=200), Point(x=400, y=200)),
        }

    def test_positions_are_snapped(self, config, entities) -> None:
        state = entities(("a", 0, 0))
        drag = DragController(config)
        drag.begin("a", Point(x=100, y=75), state, {"a"})
        assert drag.move(Point(x=137, y=96), state) == {"a": Point(x=40, y=20)}

    def test_each_entity_clamped_independently(self, config, entities) -> None:
        state = entities(("a", 0, 0), ("b", 800, 200))
        drag = DragController(config)
        drag.begin("a", Point(x=0, y=0), state, {"a", "b"})
        live = drag.move(Point(x=400, y=0), state)
        assert live == {"a": Point(x=400, y=0), "b": Point(x=1000, y=200)}

    def test_dragged_entities_do_not_collide_with_each_other(self, config, entities) -> None:
        state = entities(("a", 0, 0), ("b", 200, 0))
        drag = DragController(config)
        drag.begin("a", Point(x=0, y=0), state, {"a", "b"})
        drag.move(Point(x=0, y=200), state)
        assert drag.session.violations == {}

    def test_invalid_drop_reverts_to_last_valid(self, config, entities) -> None:
        state = entities(("a", 0, 0), ("c", 400, 0))
        drag = DragController(config)
        drag.begin("a", Point(x=10, y=10), state, {"a"})

        drag.move(Point(x=210, y=10), state)
        drag.move(Point(x=310, y=10), state)
        assert [v.code for v in drag.session.violations["a"]] == [ViolationCode.OVERLAP]

        result = drag.end(state)
        assert result.reverted is True
        assert result.moved == {"a": (Point(x=0, y=0), Point(x=200, y=0))}
        assert [v.code for v in result.violations] == [ViolationCode.OVERLAP]

    def test_cancel_returns_origins(self, config, entities) -> None:
        state = entities(("a", 0, 0))
        drag = DragController(config)
        drag.begin("a", Point(x=10, y=10), state, {"a"})
        drag.move(Point(x=410, y=10), state)
        assert drag.cancel() == {"a": Point(x=0, y=0)}
        assert drag.session is None

    def test_end_without_session(self, config, entities) -> None:
        assert DragController(config).end(entities()).moved == {}

    def test_alignment_guides(self, config, entities) -> None:
        state = entities(("a", 0, 0), ("d", 500, 300))
        drag = DragController(config)
        drag.begin("a", Point(x=0, y=0), state, {"a"})
        drag.move(Point(x=500, y=0), state)
        guides = drag.session.guides
        assert len(guides) == 1
        assert guides[0].orientation == "vertical"
        assert guides[0].position == 500
        assert (guides[0].start, guides[0].end) == (0, 450)


class TestCheckPositions:
    def test_reports_per_entity(self, config, entities) -> None:
        state = entities(("a", 0, 0), ("b", 400, 0))
        found = check_positions(state, {"a": Point(x=300, y=0)}, config)
        assert list(found) == ["a"]


class TestPlanNudge:
    def test_moves_all_selected(self, config, entities) -> None:
        state = entities(("a", 100, 0), ("b", 400, 300))
        plan = plan_nudge(state, {"a", "b"}, 20, 0, config)
        assert plan.violations == []
        assert plan.moved == {
            "a": (Point(x=100, y=0), Point(x=120, y=0)),
            "b": (Point(x=400, y=300), Point(x=420, y=300)),
        }

    def test_edge_clamp_rejects_whole_nudge(self, config, entities) -> None:
        state = entities(("a", 0, 0), ("b", 1000, 200))
        plan = plan_nudge(state, {"a", "b"}, 20, 0, config)
        assert plan.moved == {}
        assert [v.code for v in plan.violations] == [ViolationCode.OUT_OF_BOUNDS]

    def test_overlap_rejects_whole_nudge(self, config, entities) -> None:
        state = entities(("a", 0, 0), ("b", 0, 300), ("c", 220, 0))
        plan = plan_nudge(state, {"a", "b"}, 40, 0, config)
        assert plan.moved == {}
        assert ViolationCode.OVERLAP in [v.code for v in plan.violations]

    def test_no_movement_at_edge(self, config, entities) -> None:
        state = entities(("a", 0, 0))
        plan = plan_nudge(state, {"a"}, -20, 0, config)
        assert plan.moved == {}
        assert plan.violations == []

    def test_empty_selection(self, config, entities) -> None:
        assert plan_nudge(entities(("a", 0, 0)), set(), 20, 0, config).moved == {}

    def test_fine_step_moves_one_grid_cell(self, config, entities) -> None:
        state = entities(("a", 100, 100))
        assert plan_nudge(state, {"a"}, 5, 0, config).moved == {"a": (Point(x=100, y=100), Point(x=120, y=100))}
        assert plan_nudge(state, {"a"}, 0, -5, config).moved == {"a": (Point(x=100, y=100), Point(x=100, y=80))}
