"""
Configuration for the plan-api service.
"""

from __future__ import annotations

import os

from shared.framework.config import ServiceConfig
from shared.utils.errors import ConfigurationError


class PlanApiConfig(ServiceConfig):
    """Service configuration loaded from environment variables."""

    def __init__(self) -> None:
        super().__init__(service_name="plan-api")

        # HTTP
        self.api_host = os.getenv("PLAN_API_HOST", "0.0.0.0")
        self.api_port = int(os.getenv("PLAN_API_PORT", "8000"))

        # Change stream
        self.topic = os.getenv("PLAN_API_TOPIC", self.plans_topic)
        self.producer_flush_timeout = float(os.getenv("PLAN_API_PRODUCER_FLUSH_TIMEOUT", "5.0"))
        self.producer_max_retries = int(os.getenv("PLAN_API_PRODUCER_MAX_RETRIES", "3"))

        # Store
        self.scan_page_size = int(os.getenv("PLAN_API_SCAN_PAGE_SIZE", "100"))

        if self.scan_page_size <= 0:
            raise ConfigurationError(
                "Scan page size must be positive",
                config_key="PLAN_API_SCAN_PAGE_SIZE",
                config_value=self.scan_page_size,
            )
        if not self.topic:
            raise ConfigurationError("Plan topic is required", config_key="PLAN_API_TOPIC")
