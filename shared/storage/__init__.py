"""
Storage abstractions for the plan services.

Provides async clients for:
- Redis (primary plan store)
- Elasticsearch (search projection)
"""

from .redis import RedisClient, RedisConfig
from .search import SearchClient, SearchClientConfig

__all__ = [
    "RedisClient",
    "RedisConfig",
    "SearchClient",
    "SearchClientConfig",
]
