"""Key enumeration for cascading plan deletes."""

from typing import List

from shared.schemas.plan import Plan, etag_key


def _with_etag(object_id: str) -> List[str]:
    return [object_id, etag_key(object_id)]


def plan_delete_keys(plan: Plan) -> List[str]:
    """
    Every storage key owned by a plan, in a stable order.

    Plan and its ETag, plan cost shares and ETag, then per linked plan service
    its own, its linked service's and its cost shares' key and ETag: always
    ``4 + 6 * len(plan.linked_plan_services)`` keys.
    """
    keys = _with_etag(plan.object_id)
    cost_shares_id = plan.plan_cost_shares.object_id if plan.plan_cost_shares else ""
    keys += _with_etag(cost_shares_id)

    for service in plan.linked_plan_services:
        keys += _with_etag(service.object_id)
        keys += _with_etag(service.linked_service.object_id)
        keys += _with_etag(service.plan_service_cost_shares.object_id)

    return keys
