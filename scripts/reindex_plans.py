#!/usr/bin/env python3
"""
Re-drive the plan search index from the primary store.

Publishes a ``create`` event for every stored plan so that the indexer
upserts all of its documents again. Used to recover documents lost to the
indexer's at-most-once writes. The scan is resumable with ``--start-cursor``.
"""

import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

ROOT_PATH = Path(__file__).resolve().parents[1]
if str(ROOT_PATH) not in sys.path:
    sys.path.insert(0, str(ROOT_PATH))

from services.plan_api.app.publisher import PlanEventPublisher  # noqa: E402
from services.plan_api.app.store import PlanStore  # noqa: E402
from shared.framework.config import KafkaConfig  # noqa: E402
from shared.framework.producer import KafkaProducer, ProducerConfig  # noqa: E402
from shared.schemas.events import PlanOperation  # noqa: E402
from shared.storage.redis import RedisClient, RedisConfig  # noqa: E402
from shared.utils.errors import PublishError  # noqa: E402
from shared.utils.logging import setup_logging  # noqa: E402


logger = structlog.get_logger()


class PlanReindexer:
    """Walks the store and republishes every plan."""

    def __init__(
        self,
        store: PlanStore,
        publisher: Optional[PlanEventPublisher] = None,
        dry_run: bool = False,
    ):
        self.store = store
        self.publisher = publisher
        self.dry_run = dry_run
        self.logger = structlog.get_logger("plan-reindexer")

        # Metrics
        self.plans_seen = 0
        self.events_sent = 0
        self.events_failed = 0
        self.last_cursor = 0
        self.start_time: Optional[datetime] = None

    async def run(self, start_cursor: int = 0) -> Dict[str, Any]:
        """Republish every plan; returns run metrics including the last cursor."""
        self.start_time = datetime.now()
        scan = self.store.list_all(start_cursor=start_cursor)

        async for plan in scan:
            self.plans_seen += 1
            if self.dry_run:
                self.logger.info("Dry run - would republish plan", plan_id=plan.object_id)
                continue

            try:
                await self.publisher.publish(PlanOperation.CREATE, plan)
                self.events_sent += 1
            except PublishError as e:
                self.events_failed += 1
                self.logger.error(
                    "Failed to republish plan",
                    plan_id=plan.object_id,
                    error_code=e.error_code,
                    error=e.message,
                    cursor=scan.cursor,
                )

        self.last_cursor = scan.cursor
        return self.get_metrics()

    def get_metrics(self) -> Dict[str, Any]:
        """Get reindexer metrics."""
        runtime = (datetime.now() - self.start_time).total_seconds() if self.start_time else 0

        return {
            "plans_seen": self.plans_seen,
            "events_sent": self.events_sent,
            "events_failed": self.events_failed,
            "last_cursor": self.last_cursor,
            "runtime_seconds": runtime,
        }


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Republish every stored plan to the change stream")
    parser.add_argument("--redis-url", default="redis://localhost:6379/0", help="Plan store URL")
    parser.add_argument("--kafka-bootstrap", default="localhost:9092", help="Kafka bootstrap servers")
    parser.add_argument("--topic", default="plans.changes.v1", help="Plan change topic")
    parser.add_argument("--start-cursor", type=int, default=0, help="SCAN cursor to resume from")
    parser.add_argument("--page-size", type=int, default=100, help="SCAN page size")
    parser.add_argument("--dry-run", action="store_true", help="List plans without publishing")

    parser.add_argument("--log-level", default="info", help="Log level")

    args = parser.parse_args(argv)

    setup_logging("plan-reindexer", args.log_level, format_type="console")

    redis_client = RedisClient(RedisConfig(url=args.redis_url))
    store = PlanStore(redis_client, scan_page_size=args.page_size)

    producer = None
    publisher = None
    try:
        if not args.dry_run:
            producer = KafkaProducer(
                config=ProducerConfig(topic=args.topic),
                kafka_config=KafkaConfig(bootstrap_servers=args.kafka_bootstrap),
            )
            await producer.start()
            publisher = PlanEventPublisher(producer)

        await redis_client.connect()
        reindexer = PlanReindexer(store, publisher, dry_run=args.dry_run)
        metrics = await reindexer.run(start_cursor=args.start_cursor)
        logger.info("Reindex finished", **metrics)
        return 1 if metrics["events_failed"] else 0
    finally:
        if producer:
            await producer.stop()
        await redis_client.disconnect()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
