"""
Optimistic concurrency over stored plans.

Every stored plan carries an ETag: the lower-hex SHA-256 of its canonical
JSON. Reads can be made conditional on ``If-None-Match`` and updates must
present the current tag in ``If-Match``.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import structlog

from shared.schemas.plan import Plan
from shared.utils.errors import (
    AlreadyExistsError,
    NotFoundError,
    PreconditionFailedError,
    PreconditionRequiredError,
)

if TYPE_CHECKING:
    from .store import PlanStore

logger = structlog.get_logger(__name__)


def etag_of(raw: str) -> str:
    """Fingerprint of an already serialized aggregate."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def compute_etag(plan: Plan) -> str:
    return etag_of(plan.to_json())


def normalize_etag(tag: Optional[str]) -> str:
    """Strip whitespace, a weak ``W/`` prefix and surrounding quotes."""
    if not tag:
        return ""
    tag = tag.strip()
    if tag.startswith("W/"):
        tag = tag[2:].lstrip()
    if len(tag) >= 2 and tag[0] == '"' and tag[-1] == '"':
        tag = tag[1:-1]
    return tag


def quote_etag(etag: str) -> str:
    """Header form of a stored tag."""
    return f'"{etag}"'


@dataclass
class ReadResult:
    """Outcome of a conditional read; ``plan`` is None when not modified."""
    etag: str
    plan: Optional[Plan] = None
    not_modified: bool = False


class ConcurrencyControl:
    """Conditional reads and writes on top of a ``PlanStore``."""

    def __init__(self, store: "PlanStore") -> None:
        self.store = store
        self._logger = structlog.get_logger("concurrency-control")

    async def conditional_get(self, object_id: str, if_none_match: Optional[str] = None) -> ReadResult:
        """
        Read a plan unless the caller already holds its current version.

        Raises:
            NotFoundError: the plan does not exist.
        """
        plan = await self.store.get(object_id)
        etag = await self.store.get_etag(object_id)
        if etag is None:
            # Aggregate written without its tag; derive it so callers still get one
            etag = compute_etag(plan)

        if if_none_match and normalize_etag(if_none_match) == etag:
            return ReadResult(etag=etag, not_modified=True)
        return ReadResult(etag=etag, plan=plan)

    async def conditional_put(
        self,
        object_id: str,
        plan: Plan,
        if_match: Optional[str],
        previous: Optional[Plan] = None,
    ) -> str:
        """
        Replace a plan only if ``if_match`` names its current version.

        ``previous`` is the stored aggregate the replacement was derived from;
        child ids it held that ``plan`` drops are released. Returns the new
        ETag. Nothing is written when any check fails. The tag comparison and
        the write are separate round trips.

        Raises:
            PreconditionRequiredError: no tag was supplied.
            NotFoundError: the plan does not exist.
            PreconditionFailedError: the tag is stale.
            AlreadyExistsError: an id of ``plan`` belongs to another plan.
        """
        await self.check_precondition(object_id, if_match)
        await self.ensure_ids_available(plan)
        return await self.store.put(object_id, plan, previous=previous)

    async def check_precondition(self, object_id: str, if_match: Optional[str]) -> str:
        """Verify ``if_match`` against the stored tag; returns the current tag."""
        if not if_match or not if_match.strip():
            raise PreconditionRequiredError("If-Match header is required to modify a plan")

        current = await self.store.get_etag(object_id)
        if current is None:
            if not await self.store.exists(object_id):
                raise NotFoundError(f"Plan {object_id} not found", object_id=object_id)
            current = compute_etag(await self.store.get(object_id))

        supplied = normalize_etag(if_match)
        if supplied != current:
            self._logger.info(
                "Precondition failed", plan_id=object_id, supplied=supplied, current=current
            )
            raise PreconditionFailedError(
                f"ETag {supplied} does not match the current version of plan {object_id}",
                object_id=object_id,
                details={"current_etag": current},
            )
        return current

    async def ensure_ids_available(self, plan: Plan) -> None:
        """
        Check that no id of ``plan`` is held by a different plan.

        Raises:
            AlreadyExistsError: naming the first id taken elsewhere.
        """
        owners = await self.store.owners(plan.object_ids())
        for object_id, owner in owners.items():
            if owner != plan.object_id:
                self._logger.info(
                    "ObjectId already in use", plan_id=plan.object_id, object_id=object_id, owner=owner
                )
                raise AlreadyExistsError(
                    f"ObjectId {object_id} is already used by {owner}",
                    object_id=object_id,
                    details={"owner_id": owner},
                )

    async def create(self, plan: Plan) -> str:
        """
        Store a new plan; returns its ETag.

        The availability checks and the write are separate round trips, so
        two concurrent creates of one id can both succeed (last write wins).

        Raises:
            AlreadyExistsError: a plan with the same id is already stored, or
                one of its ids is already used anywhere in the store.
        """
        if await self.store.exists(plan.object_id):
            raise AlreadyExistsError(
                f"Plan {plan.object_id} already exists", object_id=plan.object_id
            )
        await self.ensure_ids_available(plan)
        return await self.store.put(plan.object_id, plan)
