"""Publishes plan change events to the plan change stream."""

from __future__ import annotations

import structlog

from shared.framework.producer import KafkaProducer
from shared.schemas.events import PlanMessage, PlanOperation
from shared.schemas.plan import Plan
from shared.utils.errors import PublishError

logger = structlog.get_logger(__name__)


class PlanEventPublisher:
    """
    Best-effort notification port for plan mutations.

    Events are keyed by plan id so that one plan's events stay on one
    partition and are consumed in order. Delivery is at most once: nothing
    is retried or dead-lettered here.
    """

    def __init__(self, producer: KafkaProducer) -> None:
        self.producer = producer

    @property
    def topic(self) -> str:
        return self.producer.config.topic

    async def publish(self, operation: PlanOperation, plan: Plan) -> None:
        """
        Enqueue a ``{"operation", "plan"}`` envelope.

        Raises:
            PublishError: the envelope could not be handed to the producer.
        """
        message = PlanMessage(operation=operation, plan=plan)
        try:
            payload = message.to_dict()
        except (TypeError, ValueError) as e:
            raise PublishError(
                f"Failed to build {operation.value} event for plan {plan.object_id}: {e}",
                topic=self.topic,
                operation=operation.value,
            ) from e

        try:
            await self.producer.send_message(payload=payload, key=plan.object_id)
        except PublishError as e:
            e.details.setdefault("operation", operation.value)
            e.details.setdefault("plan_id", plan.object_id)
            raise

        logger.debug(
            "Plan event enqueued",
            plan_id=plan.object_id,
            operation=operation.value,
            topic=self.topic,
        )
