"""Consumer projecting plan change events into the search index."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import structlog

from shared.framework.consumer import ConsumerConfig, KafkaConsumer
from shared.framework.metrics import MetricsCollector, track_processing_time
from shared.schemas.events import PlanMessage, PlanOperation
from shared.storage.search import SearchClient
from shared.utils.errors import IndexWriteError, ValidationError

from .config import PlanIndexerConfig
from .projection import IndexDocument, project_plan

logger = structlog.get_logger(__name__)


class PlanIndexConsumer(KafkaConsumer):
    """
    Applies plan events to the index, one message at a time in delivery order.

    ``create`` and ``patch`` upsert every document of the post-operation
    aggregate; ``delete`` removes them. A failed document write is logged and
    counted and the remaining documents are still attempted; messages are
    never retried.
    """

    def __init__(
        self,
        config: PlanIndexerConfig,
        search_client: SearchClient,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.indexer_config = config
        self.search = search_client
        self.index = config.index_name
        self.delete_with_routing = config.delete_with_routing
        self.metrics = metrics

        self.documents_written = 0
        self.documents_failed = 0

        self.metrics_writes = None
        if metrics is not None:
            self.metrics_writes = metrics.create_counter(
                "index_writes_total",
                "Search index document writes by action, kind and status",
                labels=["action", "kind", "status"],
            )
            metrics.create_histogram(
                "index_apply_seconds",
                "Time to write every document of one plan event",
            )

        consumer_config = ConsumerConfig(
            topics=[config.topic],
            group_id=config.consumer_group,
            auto_offset_reset=config.kafka.auto_offset_reset,
            enable_auto_commit=config.kafka.enable_auto_commit,
            max_poll_records=config.kafka.max_poll_records,
            session_timeout_ms=config.kafka.session_timeout_ms,
            heartbeat_interval_ms=config.kafka.heartbeat_interval_ms,
        )

        super().__init__(
            config=consumer_config,
            kafka_config=config.kafka,
            message_handler=self._handle_messages,
            error_handler=self._handle_error,
        )

    async def _handle_messages(self, messages: List[Dict[str, Any]]) -> None:
        """Handle a batch of Kafka messages."""
        for message in messages:
            started = time.perf_counter()
            try:
                event = PlanMessage.from_dict(message.get("payload"))
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed plan event",
                    error=e.message,
                    topic=message.get("topic"),
                    partition=message.get("partition"),
                    offset=message.get("offset"),
                )
                self._record_message("malformed")
                continue

            failures = await self.apply(event)
            self._record_message(
                "partial_failure" if failures else "success",
                duration=time.perf_counter() - started,
                message_type=event.operation.value,
            )

    async def _handle_error(self, exc: Exception) -> None:
        logger.error("Plan index consumer error", error=str(exc))
        if self.metrics is not None:
            self.metrics.record_error(error_type="consumer_error", component="plan-indexer")

    @track_processing_time("index_apply_seconds")
    async def apply(self, event: PlanMessage) -> int:
        """Apply one event; returns how many document writes failed."""
        documents = project_plan(event.plan)
        logger.info(
            "Applying plan event",
            plan_id=event.plan.object_id,
            operation=event.operation.value,
            documents=len(documents),
        )

        failures = 0
        for document in documents:
            if event.operation is PlanOperation.DELETE:
                ok = await self._delete(document)
            else:
                ok = await self._upsert(document)
            if not ok:
                failures += 1
        return failures

    async def _upsert(self, document: IndexDocument) -> bool:
        try:
            await self.search.index_document(
                self.index, document.id, document.source(), routing=document.routing
            )
        except IndexWriteError as e:
            self._record_failure("upsert", document, e)
            return False
        self._record_write("upsert", document)
        return True

    async def _delete(self, document: IndexDocument) -> bool:
        routing = document.routing if self.delete_with_routing else None
        try:
            await self.search.delete_document(self.index, document.id, routing=routing)
        except IndexWriteError as e:
            self._record_failure("delete", document, e)
            return False
        self._record_write("delete", document)
        return True

    def _record_write(self, action: str, document: IndexDocument) -> None:
        self.documents_written += 1
        if self.metrics_writes is not None:
            self.metrics_writes.labels(action=action, kind=document.kind.value, status="success").inc()

    def _record_failure(self, action: str, document: IndexDocument, error: IndexWriteError) -> None:
        self.documents_failed += 1
        logger.error(
            "Index write failed",
            action=action,
            document_id=document.id,
            kind=document.kind.value,
            routing=document.routing,
            error_code=error.error_code,
            status=error.status,
            error=error.message,
        )
        if self.metrics_writes is not None:
            self.metrics_writes.labels(action=action, kind=document.kind.value, status="failure").inc()
            self.metrics.record_error(error_type=error.error_code, component="plan-indexer")

    def _record_message(self, status: str, duration: Optional[float] = None, message_type: Optional[str] = None) -> None:
        if self.metrics is not None:
            self.metrics.record_message_processed(
                topic=self.indexer_config.topic,
                status=status,
                duration=duration,
                message_type=message_type,
            )

    def get_metrics(self) -> Dict[str, Any]:
        metrics = super().get_metrics()
        metrics.update(
            documents_written=self.documents_written,
            documents_failed=self.documents_failed,
        )
        return metrics
