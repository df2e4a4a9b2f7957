"""Pytest configuration and fixtures."""

import os

import pytest
import pytest_asyncio

from services.plan_api.app.concurrency import ConcurrencyControl
from services.plan_api.app.plans import PlanService
from services.plan_api.app.publisher import PlanEventPublisher
from services.plan_api.app.store import PlanStore
from shared.framework.metrics import MetricsCollector
from tests.fixtures.mock_services import MockKafkaProducer, MockRedisClient, MockSearchClient
from tests.fixtures.sample_plans import plan_body, sample_plan


@pytest.fixture(autouse=True)
def plans_env(monkeypatch):
    """Keep service configuration independent of the developer's shell."""
    for key in list(os.environ):
        if key.startswith(("PLANS_", "PLAN_API_", "PLAN_INDEXER_")):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("PLANS_ENV", "local")


@pytest_asyncio.fixture
async def mock_redis_client():
    """Mock Redis client fixture."""
    client = MockRedisClient()
    await client.connect()
    yield client
    await client.close()


@pytest_asyncio.fixture
async def mock_search_client():
    """Mock search client fixture."""
    client = MockSearchClient()
    await client.connect()
    yield client
    await client.close()


@pytest_asyncio.fixture
async def mock_kafka_producer():
    """Mock Kafka producer fixture."""
    producer = MockKafkaProducer()
    await producer.start()
    yield producer
    await producer.stop()


@pytest.fixture
def plan_store(mock_redis_client):
    return PlanStore(mock_redis_client, scan_page_size=2)


@pytest.fixture
def concurrency(plan_store):
    return ConcurrencyControl(plan_store)


@pytest.fixture
def plan_service(plan_store, concurrency, mock_kafka_producer):
    """Write-path orchestration over in-memory collaborators."""
    return PlanService(
        store=plan_store,
        concurrency=concurrency,
        publisher=PlanEventPublisher(mock_kafka_producer),
        metrics=MetricsCollector("plan-api-test"),
    )


@pytest.fixture
def sample_plan_body():
    """P1 with cost shares C1 and linked plan service L1 (S1, SC1)."""
    return plan_body()


@pytest.fixture
def p1():
    return sample_plan()
