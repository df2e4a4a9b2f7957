"""
Event schema definitions for the plan change stream.

Every mutation of a plan aggregate is published as a ``PlanMessage``
envelope carrying the operation and the full post-operation aggregate.
"""

from enum import Enum
from typing import Dict, Any, Union
from dataclasses import dataclass
import json

from shared.utils.errors import ValidationError

from .plan import Plan


class PlanOperation(Enum):
    """Operations carried by the plan change stream."""
    CREATE = "create"
    PATCH = "patch"
    DELETE = "delete"


@dataclass
class PlanMessage:
    """Queue envelope: ``{"operation": ..., "plan": {...}}``."""
    operation: PlanOperation
    plan: Plan

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "operation": self.operation.value,
            "plan": self.plan.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanMessage":
        """Create from dictionary."""
        if not isinstance(data, dict):
            raise ValidationError("Plan message must be an object", value=data)

        raw_operation = data.get("operation")
        try:
            operation = PlanOperation(raw_operation)
        except ValueError as e:
            raise ValidationError(
                f"Unknown operation: {raw_operation}", field="operation", value=raw_operation
            ) from e

        if data.get("plan") is None:
            raise ValidationError("Plan message carries no plan", field="plan")

        return cls(operation=operation, plan=Plan.from_dict(data["plan"]))

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: Union[str, bytes]) -> "PlanMessage":
        """Create from JSON string."""
        try:
            data = json.loads(json_str)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError(f"Invalid plan message: {e}") from e
        return cls.from_dict(data)
