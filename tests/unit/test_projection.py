"""Unit tests for the search index projection."""

import pytest

from services.plan_indexer.app.projection import (
    JOIN_FIELD,
    PLAN_INDEX_MAPPINGS,
    IndexDocument,
    project_plan,
)
from shared.schemas.plan import EntityKind
from tests.fixtures.sample_plans import sample_plan


class TestProjectPlan:

    def test_p1_documents(self, p1):
        documents = project_plan(p1)

        assert [(d.kind, d.id, d.routing, d.parent) for d in documents] == [
            (EntityKind.PLAN, "P1", None, None),
            (EntityKind.PLAN_COST_SHARES, "C1", "P1", "P1"),
            (EntityKind.LINKED_PLAN_SERVICE, "L1", "P1", "P1"),
            (EntityKind.LINKED_SERVICE, "S1", "L1", "L1"),
            (EntityKind.PLAN_SERVICE_COST_SHARES, "SC1", "L1", "L1"),
        ]

    @pytest.mark.parametrize("count", [0, 1, 3])
    def test_document_count(self, count):
        plan = sample_plan(services=[str(i) for i in range(count)])

        assert len(project_plan(plan)) == 2 + 3 * count

    def test_without_plan_cost_shares(self, p1):
        p1.plan_cost_shares = None

        kinds = [d.kind for d in project_plan(p1)]

        assert EntityKind.PLAN_COST_SHARES not in kinds
        assert len(kinds) == 4

    def test_join_field(self, p1):
        plan_doc, cost_doc, service_doc, linked_doc, _ = project_plan(p1)

        assert plan_doc.source()[JOIN_FIELD] == {"name": "plan"}
        assert cost_doc.source()[JOIN_FIELD] == {"name": "planCostShares", "parent": "P1"}
        assert service_doc.source()[JOIN_FIELD] == {"name": "linkedPlanServices", "parent": "P1"}
        assert linked_doc.source()[JOIN_FIELD] == {"name": "linkedService", "parent": "L1"}

    def test_bodies_are_entity_json(self, p1):
        plan_doc, cost_doc, _, linked_doc, _ = project_plan(p1)

        assert plan_doc.body == p1.to_dict()
        assert cost_doc.source()["copay"] == 23
        assert linked_doc.source()["name"] == "Service 1"
        assert JOIN_FIELD not in linked_doc.body

    def test_documents_are_immutable(self, p1):
        document = project_plan(p1)[0]

        with pytest.raises(AttributeError):
            document.routing = "other"
        assert isinstance(document, IndexDocument)


class TestIndexMappings:

    def test_join_relations(self):
        relations = PLAN_INDEX_MAPPINGS["properties"][JOIN_FIELD]["relations"]

        assert PLAN_INDEX_MAPPINGS["properties"][JOIN_FIELD]["type"] == "join"
        assert relations == {
            "plan": ["planCostShares", "linkedPlanServices"],
            "linkedPlanServices": ["linkedService", "planserviceCostShares"],
        }
