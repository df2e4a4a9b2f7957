"""
Entry point for the plan-api service.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from shared.framework.health import HealthCheck
from shared.framework.producer import KafkaProducer, ProducerConfig
from shared.framework.service import AsyncService
from shared.storage.redis import RedisClient, RedisConfig
from shared.utils.logging import setup_logging

from .concurrency import ConcurrencyControl
from .config import PlanApiConfig
from .plans import PlanService
from .publisher import PlanEventPublisher
from .routes import PlanRoutes
from .store import PlanStore

logger = structlog.get_logger(__name__)


class PlanApiService(AsyncService):
    """Serves plan reads and conditional writes over HTTP."""

    def __init__(
        self,
        config: Optional[PlanApiConfig] = None,
        redis_client: Optional[RedisClient] = None,
        producer: Optional[KafkaProducer] = None,
    ) -> None:
        config = config or PlanApiConfig()
        super().__init__(config, port=config.api_port)
        self.config = config

        self.redis = redis_client or RedisClient(
            RedisConfig(
                url=config.database.redis_url,
                max_connections=config.database.redis_max_connections,
                timeout=config.database.redis_timeout,
            )
        )
        self.producer = producer or KafkaProducer(
            config=ProducerConfig(
                topic=config.topic,
                flush_timeout=config.producer_flush_timeout,
                max_retries=config.producer_max_retries,
            ),
            kafka_config=config.kafka,
            error_handler=self._handle_producer_error,
        )
        self.add_producer(self.producer)

        self.store = PlanStore(self.redis, scan_page_size=config.scan_page_size)
        self.plans = PlanService(
            store=self.store,
            concurrency=ConcurrencyControl(self.store),
            publisher=PlanEventPublisher(self.producer),
            metrics=self.metrics,
        )
        self.routes = PlanRoutes(self.plans)

        self.health_checker.add_check(
            HealthCheck(name="redis", check_func=self.redis.health_check, description="Plan store ping")
        )
        self.health_checker.add_check(
            HealthCheck(
                name="kafka_producer",
                check_func=lambda: self.producer.running,
                critical=False,
                description="Change stream producer running",
            )
        )

    async def _startup_hook(self) -> None:
        await self.redis.connect()
        logger.info("Plan API started", topic=self.config.topic, port=self.port)

    async def _shutdown_hook(self) -> None:
        await self.redis.disconnect()
        logger.info("Plan API stopped")

    def _setup_service_routes(self) -> None:
        self.routes.register(self.app)

    async def _handle_producer_error(self, error: Exception) -> None:
        logger.error("Producer error", error=str(error), exc_info=True)
        self.metrics.record_error(error_type="producer_error", component="plan-api")


async def main() -> None:
    """Service entrypoint."""
    config = PlanApiConfig()
    setup_logging("plan-api", config.observability.log_level, config.observability.log_format)

    service = PlanApiService(config=config)
    await service.run()


if __name__ == "__main__":
    asyncio.run(main())
