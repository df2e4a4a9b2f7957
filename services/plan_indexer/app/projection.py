"""
Decomposition of a plan aggregate into parent/child search documents.

All documents of one plan live in a single index joined through the
``plan_join`` field:

    plan
    ├── planCostShares
    └── linkedPlanServices
        ├── linkedService
        └── planserviceCostShares

Children of the plan route by the plan id; grandchildren route by their
linked plan service id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from shared.schemas.plan import EntityKind, Plan

JOIN_FIELD = "plan_join"

PLAN_INDEX_MAPPINGS: Dict[str, Any] = {
    "properties": {
        JOIN_FIELD: {
            "type": "join",
            "relations": {
                EntityKind.PLAN.value: [
                    EntityKind.PLAN_COST_SHARES.value,
                    EntityKind.LINKED_PLAN_SERVICE.value,
                ],
                EntityKind.LINKED_PLAN_SERVICE.value: [
                    EntityKind.LINKED_SERVICE.value,
                    EntityKind.PLAN_SERVICE_COST_SHARES.value,
                ],
            },
        },
        "objectId": {"type": "keyword"},
        "objectType": {"type": "keyword"},
        "_org": {"type": "keyword"},
        "creationDate": {"type": "keyword"},
        "name": {"type": "text"},
        "deductible": {"type": "long"},
        "copay": {"type": "long"},
    }
}


@dataclass(frozen=True)
class IndexDocument:
    """One join-routed document of the projection."""
    id: str
    kind: EntityKind
    body: Dict[str, Any]
    routing: Optional[str] = None
    parent: Optional[str] = None

    def source(self) -> Dict[str, Any]:
        """Document body with the join field attached."""
        join: Dict[str, Any] = {"name": self.kind.value}
        if self.parent is not None:
            join["parent"] = self.parent
        return {**self.body, JOIN_FIELD: join}


def project_plan(plan: Plan) -> List[IndexDocument]:
    """
    Every document of a plan, parents before children.

    A plan with N linked plan services yields ``2 + 3 * N`` documents (one
    fewer when it has no plan-level cost shares).
    """
    documents = [
        IndexDocument(id=plan.object_id, kind=EntityKind.PLAN, body=plan.to_dict())
    ]

    if plan.plan_cost_shares is not None:
        documents.append(
            IndexDocument(
                id=plan.plan_cost_shares.object_id,
                kind=EntityKind.PLAN_COST_SHARES,
                body=plan.plan_cost_shares.to_dict(),
                routing=plan.object_id,
                parent=plan.object_id,
            )
        )

    for service in plan.linked_plan_services:
        documents.append(
            IndexDocument(
                id=service.object_id,
                kind=EntityKind.LINKED_PLAN_SERVICE,
                body=service.to_dict(),
                routing=plan.object_id,
                parent=plan.object_id,
            )
        )
        documents.append(
            IndexDocument(
                id=service.linked_service.object_id,
                kind=EntityKind.LINKED_SERVICE,
                body=service.linked_service.to_dict(),
                routing=service.object_id,
                parent=service.object_id,
            )
        )
        documents.append(
            IndexDocument(
                id=service.plan_service_cost_shares.object_id,
                kind=EntityKind.PLAN_SERVICE_COST_SHARES,
                body=service.plan_service_cost_shares.to_dict(),
                routing=service.object_id,
                parent=service.object_id,
            )
        )

    return documents
