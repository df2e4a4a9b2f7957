"""Unit tests for shared framework components."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from prometheus_client import CollectorRegistry

from services.plan_api.app.config import PlanApiConfig
from services.plan_indexer.app.config import PlanIndexerConfig
from shared.framework.config import ServiceConfig
from shared.framework.consumer import ConsumerConfig, KafkaConsumer
from shared.framework.health import HealthCheck, HealthChecker
from shared.framework.metrics import MetricsCollector, track_processing_time
from shared.utils.errors import ConfigurationError


class TestConfig:
    """Test environment-driven configuration."""

    def test_defaults(self):
        config = ServiceConfig(service_name="plan-api")

        assert config.environment == "local"
        assert config.plans_topic == "plans.changes.v1"
        assert config.database.redis_url == "redis://localhost:6379/0"
        assert config.search.index == "plans"
        assert "password" not in config.to_dict()["search"]

    def test_invalid_environment(self, monkeypatch):
        monkeypatch.setenv("PLANS_ENV", "moon")

        with pytest.raises(ConfigurationError) as exc_info:
            ServiceConfig(service_name="plan-api")
        assert exc_info.value.details["config_key"] == "PLANS_ENV"

    def test_plan_api_config(self, monkeypatch):
        monkeypatch.setenv("PLANS_TOPIC", "plans.changes.v2")
        monkeypatch.setenv("PLAN_API_PORT", "9000")
        monkeypatch.setenv("PLAN_API_SCAN_PAGE_SIZE", "250")

        config = PlanApiConfig()

        assert config.service_name == "plan-api"
        assert config.topic == "plans.changes.v2"
        assert config.api_port == 9000
        assert config.scan_page_size == 250

    def test_plan_api_rejects_bad_page_size(self, monkeypatch):
        monkeypatch.setenv("PLAN_API_SCAN_PAGE_SIZE", "0")

        with pytest.raises(ConfigurationError):
            PlanApiConfig()

    def test_plan_indexer_config(self, monkeypatch):
        monkeypatch.setenv("PLANS_ENV", "staging")
        monkeypatch.setenv("PLAN_INDEXER_INDEX", "plans-v2")

        config = PlanIndexerConfig()

        assert config.consumer_group == "plan-indexer-staging"
        assert config.index_name == "plans-v2"
        assert config.delete_with_routing is True


class TestHealthChecker:
    """Test HealthChecker."""

    @pytest.mark.asyncio
    async def test_all_healthy(self):
        checker = HealthChecker(ServiceConfig(service_name="plan-api"))
        checker.add_check(HealthCheck(name="redis", check_func=AsyncMock(return_value=True)))

        result = await checker.check_health()

        assert result["healthy"]
        assert result["total_checks"] == 2

    @pytest.mark.asyncio
    async def test_critical_failure(self):
        checker = HealthChecker(ServiceConfig(service_name="plan-api"))
        checker.add_check(HealthCheck(name="redis", check_func=AsyncMock(return_value=False)))

        result = await checker.check_readiness()

        assert not result["ready"]
        assert result["health"]["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_non_critical_failure_degrades(self):
        checker = HealthChecker(ServiceConfig(service_name="plan-api"))
        checker.add_check(HealthCheck(name="kafka", check_func=lambda: False, critical=False))

        result = await checker.check_health()

        assert result["status"] == "degraded"
        assert (await checker.check_readiness())["ready"]

    @pytest.mark.asyncio
    async def test_timeout_and_errors(self):
        async def slow():
            await asyncio.sleep(1)
            return True

        def broken():
            raise RuntimeError("boom")

        checker = HealthChecker(ServiceConfig(service_name="plan-api"))
        checker.add_check(HealthCheck(name="slow", check_func=slow, timeout=0.01))
        checker.add_check(HealthCheck(name="broken", check_func=broken))

        result = await checker.check_health()

        assert result["checks"]["slow"]["error"] == "timeout"
        assert result["checks"]["broken"]["status"] == "unhealthy"
        assert result["critical_failures"] == 2

    def test_add_check_replaces_same_name(self):
        checker = HealthChecker(ServiceConfig(service_name="plan-api"))
        checker.add_check(HealthCheck(name="redis", check_func=lambda: True))
        checker.add_check(HealthCheck(name="redis", check_func=lambda: False))

        assert [check.name for check in checker.checks] == ["config", "redis"]


class TestMetricsCollector:
    """Test MetricsCollector."""

    def test_names_are_prometheus_safe(self):
        registry = CollectorRegistry()
        metrics = MetricsCollector("plan-api", registry=registry)
        counter = metrics.create_counter("plan_operations_total", "ops", labels=["operation", "result"])

        counter.labels(operation="create", result="success").inc()
        metrics.record_request("POST", "/api/v1/plans", "201", 0.01)

        assert registry.get_sample_value(
            "plan_api_plan_operations_total", {"operation": "create", "result": "success"}
        ) == 1
        assert b"plan_api_requests_total" in metrics.get_metrics()

    @pytest.mark.asyncio
    async def test_track_processing_time(self):
        registry = CollectorRegistry()

        class Worker:
            def __init__(self):
                self.metrics = MetricsCollector("plan-indexer", registry=registry)
                self.metrics.create_histogram("apply_seconds", "apply duration")

            @track_processing_time("apply_seconds")
            async def apply(self):
                return "done"

        assert await Worker().apply() == "done"
        assert registry.get_sample_value("plan_indexer_apply_seconds_count") == 1


class TestKafkaConsumer:
    """Test KafkaConsumer against a mocked client library."""

    @pytest.mark.asyncio
    async def test_lifecycle(self):
        client = MagicMock()
        client.consume.return_value = []
        consumer = KafkaConsumer(
            config=ConsumerConfig(topics=["plans.changes.v1"], group_id="plan-indexer-local"),
            kafka_config=ServiceConfig(service_name="plan-indexer").kafka,
            message_handler=AsyncMock(),
        )

        with patch("shared.framework.consumer.Consumer", return_value=client) as factory:
            await consumer.start()
            await asyncio.sleep(0)
            await consumer.stop()

        assert factory.call_args.args[0]["group.id"] == "plan-indexer-local"
        client.subscribe.assert_called_once_with(["plans.changes.v1"])
        client.close.assert_called_once()
        assert not consumer.running

    @pytest.mark.asyncio
    async def test_handler_failure_reaches_error_handler(self):
        error_handler = AsyncMock()
        consumer = KafkaConsumer(
            config=ConsumerConfig(topics=["plans.changes.v1"], group_id="g"),
            kafka_config=ServiceConfig(service_name="plan-indexer").kafka,
            message_handler=AsyncMock(side_effect=RuntimeError("boom")),
            error_handler=error_handler,
        )
        message = MagicMock()
        message.error.return_value = None
        message.value.return_value = b'{"operation": "create"}'
        message.key.return_value = None

        await consumer._process_messages([message])

        error_handler.assert_awaited_once()
        assert consumer.messages_failed == 1
