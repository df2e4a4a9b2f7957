"""
Schema definitions for plan aggregates and change events.

Provides type-safe schemas for:
- The plan aggregate tree
- Change-event envelopes
"""

from .events import PlanMessage, PlanOperation
from .plan import (
    CostShares,
    EntityKind,
    LinkedPlanService,
    LinkedService,
    ObjectId,
    Plan,
    etag_key,
    is_etag_key,
)

__all__ = [
    "PlanMessage",
    "PlanOperation",
    "CostShares",
    "EntityKind",
    "LinkedPlanService",
    "LinkedService",
    "ObjectId",
    "Plan",
    "etag_key",
    "is_etag_key",
]
