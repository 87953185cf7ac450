"""Tests for the selection manager."""

from entity_canvas.geometry import Box
from entity_canvas.models import EntityKind, Point
from entity_canvas.selection import SelectionManager, SelectionState


class TestClicks:
    def test_plain_click_replaces(self) -> None:
        selection = SelectionManager()
        selection.click("a")
        selection.click("b")
        assert selection.selected == {"b"}
        assert selection.state == SelectionState.SINGLE

    def test_click_inside_selection_keeps_it(self) -> None:
        selection = SelectionManager()
        selection.select_many(["a", "b"])
        selection.click("a")
        assert selection.selected == {"a", "b"}

    def test_modifier_click_toggles(self) -> None:
        selection = SelectionManager()
        selection.click("a")
        selection.click("b", modifier=True)
        assert selection.state == SelectionState.MULTIPLE
        selection.click("a", modifier=True)
        assert selection.selected == {"b"}

    def test_select_all_and_clear(self) -> None:
        selection = SelectionManager()
        selection.select_all(["a", "b", "c"])
        assert len(selection) == 3
        selection.clear()
        assert selection.state == SelectionState.EMPTY


class TestMaintenance:
    def test_discard_drops_deleted_ids(self) -> None:
        selection = SelectionManager()
        selection.select_many(["a", "b"])
        selection.discard(["a", "zzz"])
        assert selection.selected == {"b"}

    def test_rename_follows_new_id(self) -> None:
        selection = SelectionManager()
        selection.select_many(["tmp", "b"])
        selection.rename("tmp", "real")
        assert selection.selected == {"real", "b"}

    def test_on_change_fires_only_on_change(self) -> None:
        seen = []
        selection = SelectionManager()
        selection.on_change(seen.append)
        selection.click("a")
        selection.click("a")
        selection.clear()
        assert seen == [frozenset({"a"}), frozenset()]


class TestRectangleSelection:
    def test_selects_anchors_inside(self, make_entity) -> None:
        a = make_entity(EntityKind.LLC, 0, 0, entity_id="a")
        b = make_entity(EntityKind.LLC, 400, 0, entity_id="b")
        c = make_entity(EntityKind.LLC, 0, 400, entity_id="c")
        selection = SelectionManager()
        selection.begin_rectangle(Point(x=700, y=700))
        assert selection.is_selecting
        selection.update_rectangle(Point(x=300, y=-10), [a, b, c])
        assert selection.selected == {"b"}
        assert selection.rectangle == Box(300, -10, 400, 710)

    def test_recomputed_each_move(self, make_entity) -> None:
        a = make_entity(EntityKind.LLC, 0, 0, entity_id="a")
        b = make_entity(EntityKind.LLC, 400, 0, entity_id="b")
        selection = SelectionManager()
        selection.begin_rectangle(Point(x=-10, y=-10))
        selection.update_rectangle(Point(x=500, y=100), [a, b])
        assert selection.selected == {"a", "b"}
        selection.update_rectangle(Point(x=100, y=100), [a, b])
        assert selection.selected == {"a"}

    def test_cancel_restores_previous_selection(self, make_entity) -> None:
        a = make_entity(EntityKind.LLC, 0, 0, entity_id="a")
        b = make_entity(EntityKind.LLC, 400, 0, entity_id="b")
        selection = SelectionManager()
        selection.select_only("a")
        selection.begin_rectangle(Point(x=700, y=700))
        selection.update_rectangle(Point(x=300, y=-10), [a, b])
        selection.cancel_rectangle()
        assert selection.selected == {"a"}
        assert not selection.is_selecting
        assert selection.rectangle is None

    def test_update_without_rectangle_is_ignored(self, make_entity) -> None:
        selection = SelectionManager()
        selection.update_rectangle(Point(x=10, y=10), [make_entity(EntityKind.LLC, 0, 0)])
        assert selection.selected == frozenset()
