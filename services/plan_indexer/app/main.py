"""
Entry point for the plan-indexer service.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog
from aiohttp import web

from shared.framework.health import HealthCheck
from shared.framework.service import AsyncService
from shared.storage.search import SearchClient, SearchClientConfig
from shared.utils.logging import setup_logging

from .config import PlanIndexerConfig
from .consumer import PlanIndexConsumer
from .projection import PLAN_INDEX_MAPPINGS

logger = structlog.get_logger(__name__)


class PlanIndexerService(AsyncService):
    """Keeps the plan search index in step with the plan change stream."""

    def __init__(
        self,
        config: Optional[PlanIndexerConfig] = None,
        search_client: Optional[SearchClient] = None,
    ) -> None:
        config = config or PlanIndexerConfig()
        super().__init__(config)
        self.config = config

        self.search = search_client or SearchClient(
            SearchClientConfig(
                url=config.search.url,
                username=config.search.username,
                password=config.search.password,
                timeout=config.search.timeout,
                refresh=config.refresh,
            )
        )
        self.consumer = PlanIndexConsumer(config, self.search, metrics=self.metrics)
        self.add_consumer(self.consumer)

        self.health_checker.add_check(
            HealthCheck(name="search", check_func=self.search.health_check, description="Search index ping")
        )
        self.health_checker.add_check(
            HealthCheck(
                name="kafka_consumer",
                check_func=lambda: self.consumer.running,
                critical=False,
                description="Change stream consumer running",
            )
        )

    async def _startup_hook(self) -> None:
        await self.search.connect()
        if self.config.bootstrap_index:
            await self.search.ensure_index(self.config.index_name, PLAN_INDEX_MAPPINGS)
        logger.info(
            "Plan indexer started",
            topic=self.config.topic,
            index=self.config.index_name,
            delete_with_routing=self.config.delete_with_routing,
        )

    async def _shutdown_hook(self) -> None:
        await self.search.disconnect()
        logger.info("Plan indexer stopped")

    def _setup_service_routes(self) -> None:
        self.app.router.add_get("/status", self._status_handler)

    async def _status_handler(self, request: web.Request) -> web.Response:
        """Return basic runtime information."""
        return web.json_response(
            {
                "service": self.config.service_name,
                "topic": self.config.topic,
                "index": self.config.index_name,
                "delete_with_routing": self.config.delete_with_routing,
                "consumer": self.consumer.get_metrics(),
            }
        )


async def main() -> None:
    """Service entrypoint."""
    config = PlanIndexerConfig()
    setup_logging("plan-indexer", config.observability.log_level, config.observability.log_format)

    service = PlanIndexerService(config=config)
    await service.run()


if __name__ == "__main__":
    asyncio.run(main())
