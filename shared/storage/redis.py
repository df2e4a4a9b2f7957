"""Redis async client wrapper for the primary plan store.

Provides high-level interface for Redis operations
with connection pooling, pipelined batches and error handling.
"""

from typing import List, Mapping, Optional, Sequence, Tuple
from dataclasses import dataclass
import structlog

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.utils.errors import StorageError


logger = structlog.get_logger()


@dataclass
class RedisConfig:
    """Redis configuration."""
    url: str
    max_connections: int = 20
    timeout: int = 30
    retry_on_timeout: bool = True


class RedisClient:
    """
    Async Redis client with connection pooling.

    Values are stored and returned as strings. Every Redis failure is logged
    and re-raised as ``StorageError`` so callers deal with a single error type.
    """

    def __init__(self, config: RedisConfig | str):
        if isinstance(config, str):
            config = RedisConfig(url=config)
        self.config = config
        self.logger = structlog.get_logger("redis-client")
        self.client: Optional[redis.Redis] = None
        self.is_connected: bool = False

    async def connect(self) -> None:
        """Connect to Redis."""
        if self.client:
            return

        self.client = redis.from_url(
            self.config.url,
            decode_responses=True,
            max_connections=self.config.max_connections,
            socket_timeout=self.config.timeout,
            retry_on_timeout=self.config.retry_on_timeout
        )

        # Validate connection
        try:
            await self.client.ping()
        except (RedisError, OSError) as e:
            self.client = None
            raise StorageError("Failed to connect to Redis", operation="connect") from e
        self.is_connected = True
        self.logger.info("Connected to Redis")

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.client:
            await self.client.aclose()
            self.client = None
            self.is_connected = False
            self.logger.info("Disconnected from Redis")

    # Alias for consistency with other storage clients
    async def close(self) -> None:
        """Close Redis connection."""
        await self.disconnect()

    async def get(self, key: str) -> Optional[str]:
        """Get value by key."""
        if not self.client:
            await self.connect()

        try:
            return await self.client.get(key)
        except (RedisError, OSError) as e:
            self.logger.error("Redis get error", error=str(e), key=key)
            raise StorageError(f"Redis get failed: {e}", operation="get", key=key) from e

    async def set_many(self, values: Mapping[str, str], delete: Sequence[str] = ()) -> None:
        """
        Set several keys inside one MULTI/EXEC transaction.

        Keys named in ``delete`` are removed in the same transaction.
        """
        if not self.client:
            await self.connect()

        try:
            async with self.client.pipeline(transaction=True) as pipe:
                for key, value in values.items():
                    pipe.set(key, value)
                for key in delete:
                    pipe.delete(key)
                await pipe.execute()
            self.logger.debug("Values set", keys=list(values), deleted=list(delete))
        except (RedisError, OSError) as e:
            self.logger.error("Redis transaction error", error=str(e), keys=list(values))
            raise StorageError(f"Redis transaction failed: {e}", operation="set_many") from e

    async def delete_many(self, keys: Sequence[str]) -> int:
        """
        Delete keys in one pipelined round trip.

        The pipeline is not transactional: a failure part way through leaves
        the keys already removed deleted.
        """
        if not keys:
            return 0
        if not self.client:
            await self.connect()

        try:
            async with self.client.pipeline(transaction=False) as pipe:
                for key in keys:
                    pipe.delete(key)
                results = await pipe.execute()
            deleted = sum(results)
            self.logger.debug("Keys deleted", count=len(keys), deleted=deleted)
            return deleted
        except (RedisError, OSError) as e:
            self.logger.error("Redis pipeline delete error", error=str(e), count=len(keys))
            raise StorageError(f"Redis pipeline delete failed: {e}", operation="delete_many") from e

    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        if not self.client:
            await self.connect()

        try:
            return await self.client.exists(key) > 0
        except (RedisError, OSError) as e:
            self.logger.error("Redis exists error", error=str(e), key=key)
            raise StorageError(f"Redis exists failed: {e}", operation="exists", key=key) from e

    async def scan(
        self,
        cursor: int = 0,
        match: Optional[str] = None,
        count: int = 100
    ) -> Tuple[int, List[str]]:
        """Run one SCAN step and return ``(next_cursor, keys)``."""
        if not self.client:
            await self.connect()

        try:
            next_cursor, keys = await self.client.scan(cursor=cursor, match=match, count=count)
            return int(next_cursor), list(keys)
        except (RedisError, OSError) as e:
            self.logger.error("Redis scan error", error=str(e), cursor=cursor)
            raise StorageError(f"Redis scan failed: {e}", operation="scan") from e

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            if not self.client:
                await self.connect()
            result = await self.client.ping()
            return result is True
        except (StorageError, RedisError, OSError) as e:
            self.logger.error("Redis health check failed", error=str(e))
            return False

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
