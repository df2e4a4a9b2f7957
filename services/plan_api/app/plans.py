"""
Write-path orchestration for plan aggregates.

Wires the store, concurrency control, merge-patch and cascade delete
together and notifies the change stream after every committed mutation.
The store is the source of truth: a failed publish is logged and counted,
never rolled back.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import structlog

from shared.framework.metrics import MetricsCollector
from shared.schemas.events import PlanOperation
from shared.schemas.plan import Plan
from shared.utils.errors import DataProcessingError, PublishError, create_error_context

from .cascade import plan_delete_keys
from .concurrency import ConcurrencyControl, ReadResult
from .merge import merge_plan
from .publisher import PlanEventPublisher
from .store import PlanStore

logger = structlog.get_logger(__name__)


class PlanService:
    """Create, read, list, patch and delete plans."""

    def __init__(
        self,
        store: PlanStore,
        concurrency: ConcurrencyControl,
        publisher: PlanEventPublisher,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.store = store
        self.concurrency = concurrency
        self.publisher = publisher
        self.metrics = metrics

        self.metrics_operations = None
        self.metrics_publish_failures = None
        if metrics is not None:
            self.metrics_operations = metrics.create_counter(
                "plan_operations_total",
                "Plan operations by operation and result",
                labels=["operation", "result"],
            )
            self.metrics_publish_failures = metrics.create_counter(
                "plan_publish_failures_total",
                "Change events that could not be published",
                labels=["operation"],
            )

    async def create(self, body: Dict[str, Any]) -> Tuple[Plan, str]:
        """Validate and store a new plan; returns it with its ETag."""
        with self._track("create"):
            plan = Plan.from_dict(body)
            plan.validate()
            etag = await self.concurrency.create(plan)

        logger.info("Plan created", plan_id=plan.object_id, etag=etag)
        await self._notify(PlanOperation.CREATE, plan)
        return plan, etag

    async def get(self, object_id: str, if_none_match: Optional[str] = None) -> ReadResult:
        with self._track("get", object_id):
            return await self.concurrency.conditional_get(object_id, if_none_match)

    async def list(self) -> List[Plan]:
        """Every stored plan, in scan order."""
        with self._track("list"):
            return [plan async for plan in self.store.list_all()]

    async def patch(self, object_id: str, body: Dict[str, Any], if_match: Optional[str]) -> Tuple[Plan, str]:
        """
        Merge a sparse update into a stored plan.

        The merged aggregate must still satisfy ``Plan.check_integrity`` and
        may not take ids held by other plans. The precondition is checked on
        write; HTTP callers check it once more before reading the body so a
        stale writer gets 412 rather than a body error.
        """
        with self._track("patch", object_id):
            existing = await self.store.get(object_id)
            merged = merge_plan(existing, Plan.from_dict(body))
            merged.check_integrity()
            etag = await self.concurrency.conditional_put(object_id, merged, if_match, previous=existing)

        logger.info("Plan patched", plan_id=object_id, etag=etag)
        await self._notify(PlanOperation.PATCH, merged)
        return merged, etag

    async def delete(self, object_id: str) -> List[str]:
        """Remove a plan and every key it owns; returns the deleted key set."""
        with self._track("delete", object_id):
            plan = await self.store.get(object_id)
            keys = plan_delete_keys(plan)
            await self.store.delete(keys)

        logger.info("Plan deleted", plan_id=object_id, keys=len(keys))
        await self._notify(PlanOperation.DELETE, plan)
        return keys

    async def _notify(self, operation: PlanOperation, plan: Plan) -> None:
        try:
            await self.publisher.publish(operation, plan)
        except PublishError as e:
            logger.error(
                "Failed to publish plan event",
                plan_id=plan.object_id,
                operation=operation.value,
                error_code=e.error_code,
                error=e.message,
            )
            if self.metrics is not None:
                self.metrics_publish_failures.labels(operation=operation.value).inc()
                self.metrics.record_error(error_type=e.error_code, component="publisher")

    def _track(self, operation: str, plan_id: Optional[str] = None) -> "_OperationTracker":
        return _OperationTracker(self, operation, plan_id)


class _OperationTracker:
    """Counts one operation's outcome by error code and tags escaping errors with their context."""

    def __init__(self, service: PlanService, operation: str, plan_id: Optional[str] = None) -> None:
        self.service = service
        self.operation = operation
        self.plan_id = plan_id

    def __enter__(self) -> "_OperationTracker":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if isinstance(exc, DataProcessingError) and exc.context is None:
            exc.context = create_error_context(
                service="plan-api", operation=self.operation, plan_id=self.plan_id
            )

        counter = self.service.metrics_operations
        if counter is not None:
            if exc is None:
                result = "success"
            elif isinstance(exc, DataProcessingError):
                result = exc.error_code.lower()
            else:
                result = "error"
            counter.labels(operation=self.operation, result=result).inc()
        return False
