"""
Configuration management for the plan services.

Provides typed configuration classes with environment variable
injection and validation.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

from shared.utils.errors import ConfigurationError


@dataclass
class KafkaConfig:
    """Kafka configuration."""
    bootstrap_servers: str = field(default_factory=lambda: os.getenv("PLANS_KAFKA_BOOTSTRAP", "localhost:9092"))
    consumer_group: str = field(default_factory=lambda: os.getenv("PLANS_CONSUMER_GROUP", "plans-group"))
    auto_offset_reset: str = field(default_factory=lambda: os.getenv("PLANS_KAFKA_AUTO_OFFSET_RESET", "earliest"))
    enable_auto_commit: bool = field(default_factory=lambda: os.getenv("PLANS_KAFKA_AUTO_COMMIT", "true").lower() == "true")
    max_poll_records: int = field(default_factory=lambda: int(os.getenv("PLANS_KAFKA_MAX_POLL_RECORDS", "500")))
    session_timeout_ms: int = field(default_factory=lambda: int(os.getenv("PLANS_KAFKA_SESSION_TIMEOUT_MS", "30000")))
    heartbeat_interval_ms: int = field(default_factory=lambda: int(os.getenv("PLANS_KAFKA_HEARTBEAT_INTERVAL_MS", "3000")))


@dataclass
class DatabaseConfig:
    """Primary store configuration."""
    redis_url: str = field(default_factory=lambda: os.getenv("PLANS_REDIS_URL", "redis://localhost:6379/0"))
    redis_max_connections: int = field(default_factory=lambda: int(os.getenv("PLANS_REDIS_MAX_CONNECTIONS", "20")))
    redis_timeout: int = field(default_factory=lambda: int(os.getenv("PLANS_REDIS_TIMEOUT", "30")))


@dataclass
class SearchConfig:
    """Search index configuration."""
    url: str = field(default_factory=lambda: os.getenv("PLANS_ELASTICSEARCH_URL", "http://localhost:9200"))
    index: str = field(default_factory=lambda: os.getenv("PLANS_ELASTICSEARCH_INDEX", "plans"))
    username: Optional[str] = field(default_factory=lambda: os.getenv("PLANS_ELASTICSEARCH_USER"))
    password: Optional[str] = field(default_factory=lambda: os.getenv("PLANS_ELASTICSEARCH_PASSWORD"))
    timeout: int = field(default_factory=lambda: int(os.getenv("PLANS_ELASTICSEARCH_TIMEOUT", "30")))


@dataclass
class ObservabilityConfig:
    """Observability configuration."""
    log_level: str = field(default_factory=lambda: os.getenv("PLANS_LOG_LEVEL", "info"))
    log_format: str = field(default_factory=lambda: os.getenv("PLANS_LOG_FORMAT", "json"))
    health_port: int = field(default_factory=lambda: int(os.getenv("PLANS_HEALTH_PORT", "8080")))


@dataclass
class ServiceConfig:
    """Base service configuration."""
    service_name: str
    environment: str = field(default_factory=lambda: os.getenv("PLANS_ENV", "local"))

    # Sub-configurations
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    # Change stream shared by the API (producer) and the indexer (consumer)
    plans_topic: str = field(default_factory=lambda: os.getenv("PLANS_TOPIC", "plans.changes.v1"))

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.service_name:
            raise ConfigurationError("service_name is required", config_key="service_name")

        if self.environment not in ["local", "dev", "staging", "prod"]:
            raise ConfigurationError(
                f"Invalid environment: {self.environment}",
                config_key="PLANS_ENV",
                config_value=self.environment,
            )

    @classmethod
    def from_env(cls, service_name: str) -> "ServiceConfig":
        """Create configuration from environment variables."""
        return cls(service_name=service_name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary (credentials omitted)."""
        return {
            "service_name": self.service_name,
            "environment": self.environment,
            "plans_topic": self.plans_topic,
            "kafka": {
                "bootstrap_servers": self.kafka.bootstrap_servers,
                "consumer_group": self.kafka.consumer_group,
                "auto_offset_reset": self.kafka.auto_offset_reset,
                "enable_auto_commit": self.kafka.enable_auto_commit,
                "max_poll_records": self.kafka.max_poll_records,
                "session_timeout_ms": self.kafka.session_timeout_ms,
            },
            "database": {
                "redis_url": self.database.redis_url,
                "redis_max_connections": self.database.redis_max_connections,
            },
            "search": {
                "url": self.search.url,
                "index": self.search.index,
                "timeout": self.search.timeout,
            },
            "observability": {
                "log_level": self.observability.log_level,
                "log_format": self.observability.log_format,
                "health_port": self.observability.health_port,
            },
        }
