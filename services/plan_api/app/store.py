"""Redis-backed persistence for plan aggregates and their ETags."""

from __future__ import annotations

import json
from typing import AsyncIterator, Dict, Iterable, Optional, Set

import structlog

from shared.schemas.plan import Plan, etag_key, is_etag_key, owner_marker
from shared.storage.redis import RedisClient
from shared.utils.errors import NotFoundError, StorageError, ValidationError

from .concurrency import etag_of

logger = structlog.get_logger(__name__)


class PlanScan:
    """
    Lazy, resumable iteration over every stored plan.

    Walks the keyspace with ``SCAN``; ``cursor`` holds the cursor to resume
    from after the last completed page (0 once the scan is exhausted). Keys
    returned again after a rehash are skipped.
    """

    def __init__(self, store: "PlanStore", start_cursor: int = 0, page_size: int = 100) -> None:
        self._store = store
        self._page_size = page_size
        self._seen: Set[str] = set()
        self.cursor = start_cursor
        self.exhausted = False

    def __aiter__(self) -> AsyncIterator[Plan]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Plan]:
        redis = self._store.redis
        cursor = self.cursor
        while True:
            cursor, keys = await redis.scan(cursor=cursor, count=self._page_size)
            for key in keys:
                if is_etag_key(key) or key in self._seen:
                    continue
                self._seen.add(key)

                plan = await self._store.load(key)
                if plan is not None:
                    yield plan

            self.cursor = cursor
            if cursor == 0:
                self.exhausted = True
                return


class PlanStore:
    """
    Aggregate store over Redis.

    A plan is kept as canonical JSON under its ``objectId``; the paired ETag
    lives under ``<objectId>:etag`` and is always written in the same
    transaction as the aggregate. Every child entity id holds an ownership
    marker naming its plan, so that ids stay unique across the whole store
    and the cascade delete only ever removes keys the plan owns.
    """

    def __init__(self, redis_client: RedisClient, scan_page_size: int = 100) -> None:
        self.redis = redis_client
        self.scan_page_size = scan_page_size
        self._logger = structlog.get_logger("plan-store")

    async def exists(self, object_id: str) -> bool:
        return await self.redis.exists(object_id)

    async def get(self, object_id: str) -> Plan:
        """
        Load a plan.

        Raises:
            NotFoundError: no aggregate is stored under ``object_id``.
        """
        raw = await self.redis.get(object_id)
        if raw is None:
            raise NotFoundError(f"Plan {object_id} not found", object_id=object_id)
        try:
            plan = Plan.from_json(raw)
        except ValidationError as e:
            raise StorageError(
                f"Stored plan {object_id} is unreadable: {e.message}", operation="get", key=object_id
            ) from e
        if plan.object_id != object_id:
            # Ownership marker of a child entity
            raise NotFoundError(f"Plan {object_id} not found", object_id=object_id)
        return plan

    async def get_etag(self, object_id: str) -> Optional[str]:
        return await self.redis.get(etag_key(object_id))

    async def put(self, object_id: str, plan: Plan, previous: Optional[Plan] = None) -> str:
        """
        Write the aggregate, its fresh ETag and its child markers atomically.

        Markers of children that ``previous`` had and ``plan`` no longer has
        are removed in the same transaction. Returns the ETag.
        """
        raw = plan.to_json()
        etag = etag_of(raw)
        values = {object_id: raw, etag_key(object_id): etag}
        marker = owner_marker(object_id)
        for child_id in plan.object_ids()[1:]:
            values[child_id] = marker

        released = []
        if previous is not None:
            released = [child_id for child_id in previous.object_ids()[1:] if child_id not in values]

        await self.redis.set_many(values, delete=released)
        self._logger.debug("Plan stored", plan_id=object_id, etag=etag, released=len(released))
        return etag

    async def owners(self, object_ids: Iterable[str]) -> Dict[str, str]:
        """
        Map each id that is already taken to the plan owning it.

        A plan's own id maps to itself; a key holding anything else than a
        plan or a marker also maps to itself.
        """
        owners: Dict[str, str] = {}
        for object_id in object_ids:
            raw = await self.redis.get(object_id)
            if raw is None:
                continue
            owners[object_id] = _owner_of(object_id, raw)
        return owners

    async def delete(self, keys: Iterable[str]) -> int:
        """Delete keys in one pipelined batch; returns how many existed."""
        keys = list(keys)
        deleted = await self.redis.delete_many(keys)
        self._logger.debug("Plan keys deleted", requested=len(keys), deleted=deleted)
        return deleted

    def list_all(self, start_cursor: int = 0) -> PlanScan:
        """Iterate every stored plan, optionally resuming from a cursor."""
        return PlanScan(self, start_cursor=start_cursor, page_size=self.scan_page_size)

    async def load(self, key: str) -> Optional[Plan]:
        """Read a key as a plan; None when missing or not a plan aggregate."""
        raw = await self.redis.get(key)
        if raw is None:
            return None
        try:
            plan = Plan.from_json(raw)
        except ValidationError:
            self._logger.debug("Skipping non-plan key", key=key)
            return None
        if plan.object_id != key:
            self._logger.debug("Skipping non-plan key", key=key)
            return None
        return plan


def _owner_of(key: str, raw: str) -> str:
    try:
        value = json.loads(raw)
    except ValueError:
        return key
    if isinstance(value, dict) and isinstance(value.get("ownerId"), str):
        return value["ownerId"]
    return key
