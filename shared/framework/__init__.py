"""
Core framework components for the plan services.

Provides base classes and abstractions for building observable
async services with Kafka integration.
"""

from .service import AsyncService
from .consumer import KafkaConsumer, ConsumerConfig
from .producer import KafkaProducer, ProducerConfig
from .config import ServiceConfig, KafkaConfig, DatabaseConfig, SearchConfig, ObservabilityConfig
from .health import HealthChecker, HealthCheck
from .metrics import MetricsCollector

__all__ = [
    "AsyncService",
    "KafkaConsumer",
    "ConsumerConfig",
    "KafkaProducer",
    "ProducerConfig",
    "ServiceConfig",
    "KafkaConfig",
    "DatabaseConfig",
    "SearchConfig",
    "ObservabilityConfig",
    "HealthChecker",
    "HealthCheck",
    "MetricsCollector",
]
