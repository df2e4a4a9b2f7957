"""
Plan aggregate model.

The aggregate is held in memory as an explicit tree of dataclasses keyed by
typed object ids. Inbound documents are checked against pydantic models of
the wire shape before they are turned into the tree. ``to_dict``/``from_dict``
and ``to_json``/``from_json`` are the only serialization boundary; the JSON
field names match the stored and published representation (``_org``,
``planserviceCostShares`` ...).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, NewType, Optional, Sequence, Tuple, Union
import json

import pydantic
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, model_validator

from shared.utils.errors import SerializationError, ValidationError


ObjectId = NewType("ObjectId", str)

ETAG_SUFFIX = ":etag"


class EntityKind(Enum):
    """Entity kinds of the aggregate, named after their index join relation."""
    PLAN = "plan"
    PLAN_COST_SHARES = "planCostShares"
    LINKED_PLAN_SERVICE = "linkedPlanServices"
    LINKED_SERVICE = "linkedService"
    PLAN_SERVICE_COST_SHARES = "planserviceCostShares"


def etag_key(object_id: str) -> str:
    """Storage key of the ETag paired with an entity."""
    return f"{object_id}{ETAG_SUFFIX}"


def is_etag_key(key: str) -> bool:
    return key.endswith(ETAG_SUFFIX)


def owner_marker(plan_id: str) -> str:
    """Value stored under a child entity's id, naming the plan that owns it."""
    return _dumps({"ownerId": plan_id})


def _dumps(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), allow_nan=False)


def _field_path(loc: Sequence[Union[str, int]]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path = f"{path}.{part}" if path else str(part)
    return path or "plan"


@dataclass
class CostShares:
    """Deductible/copay pair, used both at plan level and per linked service."""
    object_id: ObjectId = ObjectId("")
    object_type: str = ""
    org: str = ""
    deductible: int = 0
    copay: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "deductible": self.deductible,
            "copay": self.copay,
            "objectId": self.object_id,
            "objectType": self.object_type,
            "_org": self.org,
        }


@dataclass
class LinkedService:
    """Service referenced by a linked plan service."""
    object_id: ObjectId = ObjectId("")
    object_type: str = ""
    org: str = ""
    name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "objectId": self.object_id,
            "objectType": self.object_type,
            "_org": self.org,
        }


@dataclass
class LinkedPlanService:
    """A service attached to a plan, with its own cost shares."""
    object_id: ObjectId = ObjectId("")
    object_type: str = ""
    org: str = ""
    linked_service: LinkedService = field(default_factory=LinkedService)
    plan_service_cost_shares: CostShares = field(default_factory=CostShares)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "linkedService": self.linked_service.to_dict(),
            "planserviceCostShares": self.plan_service_cost_shares.to_dict(),
            "objectId": self.object_id,
            "objectType": self.object_type,
            "_org": self.org,
        }


class _Payload(BaseModel):
    """Wire shape shared by every entity; explicit nulls read as absent."""

    model_config = ConfigDict(extra="ignore")

    object_id: StrictStr = Field("", alias="objectId")
    object_type: StrictStr = Field("", alias="objectType")
    org: StrictStr = Field("", alias="_org")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class CostSharesPayload(_Payload):
    deductible: StrictInt = Field(0, ge=0)
    copay: StrictInt = Field(0, ge=0)

    def to_entity(self) -> CostShares:
        return CostShares(
            object_id=ObjectId(self.object_id),
            object_type=self.object_type,
            org=self.org,
            deductible=self.deductible,
            copay=self.copay,
        )


class LinkedServicePayload(_Payload):
    name: StrictStr = ""

    def to_entity(self) -> LinkedService:
        return LinkedService(
            object_id=ObjectId(self.object_id),
            object_type=self.object_type,
            org=self.org,
            name=self.name,
        )


class LinkedPlanServicePayload(_Payload):
    linked_service: LinkedServicePayload = Field(
        default_factory=LinkedServicePayload, alias="linkedService"
    )
    plan_service_cost_shares: CostSharesPayload = Field(
        default_factory=CostSharesPayload, alias="planserviceCostShares"
    )

    def to_entity(self) -> LinkedPlanService:
        return LinkedPlanService(
            object_id=ObjectId(self.object_id),
            object_type=self.object_type,
            org=self.org,
            linked_service=self.linked_service.to_entity(),
            plan_service_cost_shares=self.plan_service_cost_shares.to_entity(),
        )


class PlanPayload(_Payload):
    """
    Wire shape of a plan document.

    Every field is optional so that the same model reads full aggregates and
    sparse merge-patch bodies; completeness is checked on the aggregate.
    """

    creation_date: StrictStr = Field("", alias="creationDate")
    plan_cost_shares: Optional[CostSharesPayload] = Field(None, alias="planCostShares")
    linked_plan_services: List[LinkedPlanServicePayload] = Field(
        default_factory=list, alias="linkedPlanServices"
    )


Entity = Union["Plan", CostShares, LinkedPlanService, LinkedService]


@dataclass
class Plan:
    """
    Root of the plan aggregate.

    Owns exactly one plan-level ``CostShares`` and an ordered list of
    ``LinkedPlanService`` entries. Identity of list entries is their
    ``object_id``; order carries no meaning.
    """
    object_id: ObjectId = ObjectId("")
    object_type: str = ""
    org: str = ""
    creation_date: str = ""
    plan_cost_shares: Optional[CostShares] = None
    linked_plan_services: List[LinkedPlanService] = field(default_factory=list)

    kind: ClassVar[EntityKind] = EntityKind.PLAN

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "planCostShares": self.plan_cost_shares.to_dict() if self.plan_cost_shares else None,
            "linkedPlanServices": [service.to_dict() for service in self.linked_plan_services],
            "creationDate": self.creation_date,
            "objectId": self.object_id,
            "objectType": self.object_type,
            "_org": self.org,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Plan":
        """
        Create from dictionary.

        Absent fields become empty strings, zero amounts, no cost shares and
        an empty service list. Wrong types and negative amounts raise
        ``ValidationError`` naming the first offending field path.
        """
        try:
            payload = PlanPayload.model_validate(data)
        except pydantic.ValidationError as e:
            error = e.errors()[0]
            path = _field_path(error["loc"])
            raise ValidationError(
                f"{path}: {error['msg']}", field=path, value=error.get("input")
            ) from e

        return cls(
            object_id=ObjectId(payload.object_id),
            object_type=payload.object_type,
            org=payload.org,
            creation_date=payload.creation_date,
            plan_cost_shares=(
                payload.plan_cost_shares.to_entity()
                if payload.plan_cost_shares is not None else None
            ),
            linked_plan_services=[service.to_entity() for service in payload.linked_plan_services],
        )

    def to_json(self) -> str:
        """
        Canonical JSON encoding (sorted keys, compact separators).

        The output is deterministic for equal aggregates, which is what the
        ETag is computed over. Raises ``SerializationError`` naming the first
        sub-entity that cannot be encoded.
        """
        try:
            return _dumps(self.to_dict())
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"Failed to serialize plan {self.object_id}: {e}",
                entity=self._find_unserializable(),
                details={"object_id": self.object_id},
            ) from e

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> "Plan":
        """Create from a JSON document."""
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError(f"Invalid JSON: {e}") from e
        return cls.from_dict(data)

    def _find_unserializable(self) -> str:
        # Leaves first so that the innermost failing entity is reported
        for path, entity in reversed(list(self.iter_entities())):
            if entity is self:
                continue
            try:
                _dumps(entity.to_dict())
            except (TypeError, ValueError):
                return path
        return "plan"

    def iter_entities(self) -> Iterator[Tuple[str, Entity]]:
        """Yield ``(path, entity)`` for every entity of the aggregate, root first."""
        yield "plan", self
        if self.plan_cost_shares is not None:
            yield "planCostShares", self.plan_cost_shares
        for i, service in enumerate(self.linked_plan_services):
            path = f"linkedPlanServices[{i}]"
            yield path, service
            yield f"{path}.linkedService", service.linked_service
            yield f"{path}.planserviceCostShares", service.plan_service_cost_shares

    def object_ids(self) -> List[ObjectId]:
        """Ids of every entity of the aggregate, root first."""
        return [entity.object_id for _, entity in self.iter_entities()]

    def validate(self) -> None:
        """
        Check that the aggregate is complete enough to be created.

        Raises:
            ValidationError: naming the first missing or invalid field.
        """
        if not self.object_id:
            raise ValidationError("ObjectId is required", field="objectId")
        if self.plan_cost_shares is None or not self.plan_cost_shares.object_id:
            raise ValidationError(
                "PlanCostShares and its ObjectId are required",
                field="planCostShares.objectId",
            )
        if not self.linked_plan_services:
            raise ValidationError(
                "At least one LinkedPlanService is required",
                field="linkedPlanServices",
            )
        self.check_integrity()

    def check_integrity(self) -> None:
        """
        Rules every stored aggregate obeys, whether created whole or merged.

        Each entity present has an id, amounts are not negative and no id
        appears twice.

        Raises:
            ValidationError: naming the first offending field.
        """
        for path, entity in self.iter_entities():
            if not entity.object_id:
                raise ValidationError(
                    f"{type(entity).__name__} ObjectId is required",
                    field="objectId" if entity is self else f"{path}.objectId",
                )

        for path, entity in self.iter_entities():
            if isinstance(entity, CostShares):
                for name in ("deductible", "copay"):
                    if getattr(entity, name) < 0:
                        raise ValidationError(
                            f"{name} must not be negative",
                            field=f"{path}.{name}",
                            value=getattr(entity, name),
                        )

        seen = set()
        for path, entity in self.iter_entities():
            if entity.object_id in seen:
                raise ValidationError(
                    "ObjectIds must be unique within a plan",
                    field="objectId" if entity is self else f"{path}.objectId",
                    value=entity.object_id,
                )
            seen.add(entity.object_id)
