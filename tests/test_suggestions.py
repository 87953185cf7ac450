"""Tests for the rule-based advisor."""

import pytest

from entity_canvas.models import Connection, EntityKind
from entity_canvas.suggestions import ActionType, RuleBasedAdvisor, build_suggestions


def ids(suggestions):
    return [s.id for s in suggestions]


class TestBuildSuggestions:
    def test_empty_structure_gets_welcome_only(self) -> None:
        [welcome] = build_suggestions([], [])
        assert welcome.id == "welcome"
        assert welcome.actions[0].data == {"kind": "Trust"}

    def test_single_trust(self, make_entity) -> None:
        result = ids(build_suggestions([make_entity(EntityKind.TRUST, 0, 0, "T")], []))
        assert result == ["single-Trust", "trust-needs-llc"]

    def test_llc_without_scorp(self, make_entity) -> None:
        entities = [
            make_entity(EntityKind.TRUST, 0, 0, "T", entity_id="t"),
            make_entity(EntityKind.LLC, 400, 0, "L", entity_id="l"),
        ]
        result = ids(build_suggestions(entities, [Connection(source="t", target="l")]))
        assert result == ["llc-needs-scorp", "missing-tax-return"]

    def test_unconnected_entities_offer_a_legal_connection(self, make_entity) -> None:
        entities = [
            make_entity(EntityKind.TAX_RETURN, 0, 0, "R", entity_id="x"),
            make_entity(EntityKind.SCORP, 400, 0, "S", entity_id="s"),
        ]
        [unconnected] = [s for s in build_suggestions(entities, []) if s.id == "unconnected-entities"]
        assert set(unconnected.related_entities) == {"x", "s"}
        [action] = unconnected.actions
        assert action.type == ActionType.ADD_CONNECTION
        # a tax return can only be a target
        assert action.data == {"source": "s", "target": "x"}

    def test_results_are_capped(self, make_entity) -> None:
        entities = [
            make_entity(EntityKind.TRUST, 0, 0, entity_id="t"),
            make_entity(EntityKind.LLC, 400, 0, entity_id="l"),
            make_entity(EntityKind.LLC, 0, 400, entity_id="l2"),
            make_entity(EntityKind.LLC, 400, 400, entity_id="l3"),
        ]
        connections = [Connection(source="t", target="l"), Connection(source="t", target="l2")]
        result = build_suggestions(entities, connections)
        assert len(result) == 5
        assert len(build_suggestions(entities, connections, limit=2)) == 2

    def test_json_shape(self) -> None:
        data = build_suggestions([], [])[0].to_json_dict()
        assert set(data) == {"id", "message", "type", "relatedEntities", "actions"}
        assert data["type"] == "tip"
        assert data["actions"][0]["type"] == "add_entity"


class TestRuleBasedAdvisor:
    @pytest.mark.asyncio
    async def test_generate(self, make_entity) -> None:
        advisor = RuleBasedAdvisor(limit=1)
        result = await advisor.generate([make_entity(EntityKind.LLC, 0, 0)], [])
        assert ids(result) == ["single-LLC"]
