"""
Merge-patch of plan aggregates.

A patch is a sparse plan: empty strings, zero amounts, a missing cost-share
object and an empty service list all mean "leave unchanged". There is no way
to clear a field, and an amount explicitly patched to 0 is ignored.
"""

from __future__ import annotations

import copy
from typing import Dict, List

from shared.schemas.plan import CostShares, LinkedPlanService, Plan
from shared.utils.errors import IdentityMismatchError


def _pick(current, patched):
    return patched if patched else current


def merge_cost_shares(existing: CostShares, patch: CostShares, entity: str = "planCostShares") -> CostShares:
    """
    Field-wise merge of two cost-share objects.

    The patch must name the existing id; an id-less patch is a mismatch too.
    """
    if patch.object_id != existing.object_id:
        raise IdentityMismatchError(
            f"{entity} objectId {patch.object_id} does not match {existing.object_id}",
            entity=entity,
            expected_id=existing.object_id,
            actual_id=patch.object_id,
        )

    return CostShares(
        object_id=existing.object_id,
        object_type=_pick(existing.object_type, patch.object_type),
        org=_pick(existing.org, patch.org),
        deductible=_pick(existing.deductible, patch.deductible),
        copay=_pick(existing.copay, patch.copay),
    )


def merge_linked_plan_services(
    existing: List[LinkedPlanService],
    patch: List[LinkedPlanService],
) -> List[LinkedPlanService]:
    """Replace entries by id, append unknown ids in patch order, drop nothing."""
    incoming: Dict[str, LinkedPlanService] = {}
    for service in patch:
        incoming[service.object_id] = service

    merged = []
    for service in existing:
        replacement = incoming.pop(service.object_id, None)
        merged.append(copy.deepcopy(replacement if replacement is not None else service))

    merged.extend(copy.deepcopy(service) for service in incoming.values())
    return merged


def merge_plan(existing: Plan, patch: Plan) -> Plan:
    """
    Compute the post-patch aggregate.

    Neither input is modified; the result shares no objects with them.

    Raises:
        IdentityMismatchError: the patch names a different plan or
            plan-level cost-share id.
    """
    if patch.object_id and patch.object_id != existing.object_id:
        raise IdentityMismatchError(
            f"Plan objectId {patch.object_id} does not match {existing.object_id}",
            entity="plan",
            expected_id=existing.object_id,
            actual_id=patch.object_id,
        )

    if patch.plan_cost_shares is None:
        cost_shares = copy.deepcopy(existing.plan_cost_shares)
    elif existing.plan_cost_shares is None:
        cost_shares = copy.deepcopy(patch.plan_cost_shares)
    else:
        cost_shares = merge_cost_shares(existing.plan_cost_shares, patch.plan_cost_shares)

    return Plan(
        object_id=existing.object_id,
        object_type=_pick(existing.object_type, patch.object_type),
        org=_pick(existing.org, patch.org),
        creation_date=_pick(existing.creation_date, patch.creation_date),
        plan_cost_shares=cost_shares,
        linked_plan_services=merge_linked_plan_services(
            existing.linked_plan_services, patch.linked_plan_services
        ),
    )
