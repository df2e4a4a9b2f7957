"""
Configuration for the plan-indexer service.
"""

from __future__ import annotations

import os

from shared.framework.config import ServiceConfig


class PlanIndexerConfig(ServiceConfig):
    """Service configuration loaded from environment variables."""

    def __init__(self) -> None:
        super().__init__(service_name="plan-indexer")

        # Change stream
        self.topic = os.getenv("PLAN_INDEXER_TOPIC", self.plans_topic)
        self.consumer_group = os.getenv(
            "PLAN_INDEXER_CONSUMER_GROUP",
            f"{self.service_name}-{self.environment}",
        )

        # Search index
        self.index_name = os.getenv("PLAN_INDEXER_INDEX", self.search.index)
        self.refresh = os.getenv("PLAN_INDEXER_REFRESH", "true")
        # Deletes carry the same routing as upserts unless disabled
        self.delete_with_routing = (
            os.getenv("PLAN_INDEXER_DELETE_WITH_ROUTING", "true").lower() == "true"
        )
        self.bootstrap_index = (
            os.getenv("PLAN_INDEXER_BOOTSTRAP_INDEX", "true").lower() == "true"
        )
