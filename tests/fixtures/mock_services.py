"""Mock services for testing."""

import logging
from typing import Dict, Any, List, Mapping, Optional, Sequence, Set, Tuple

from shared.framework.producer import ProducerConfig
from shared.utils.errors import IndexWriteError, PublishError, StorageError


logger = logging.getLogger(__name__)


class MockRedisClient:
    """
    In-memory stand-in for ``shared.storage.redis.RedisClient``.

    ``fail_on`` names operations that raise ``StorageError``. ``scan_pages``
    scripts the SCAN replies; by default keys are paged in insertion order.
    """

    def __init__(self, page_size: int = 2):
        self.is_connected = False
        self.data: Dict[str, str] = {}
        self.fail_on: Set[str] = set()
        self.page_size = page_size
        self.scan_pages: Optional[List[Tuple[int, List[str]]]] = None
        self.scan_calls: List[int] = []
        self.transactions: List[Dict[str, str]] = []
        self.reads: List[str] = []

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise StorageError(f"Redis {operation} failed", operation=operation)

    async def connect(self):
        self.is_connected = True
        logger.info("Mock Redis client connected")

    async def disconnect(self):
        self.is_connected = False
        logger.info("Mock Redis client disconnected")

    async def close(self):
        await self.disconnect()

    async def get(self, key: str) -> Optional[str]:
        self._check("get")
        self.reads.append(key)
        return self.data.get(key)

    async def set_many(self, values: Mapping[str, str], delete: Sequence[str] = ()) -> None:
        self._check("set_many")
        self.transactions.append(dict(values))
        self.data.update(values)
        for key in delete:
            self.data.pop(key, None)

    async def delete_many(self, keys: Sequence[str]) -> int:
        self._check("delete_many")
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    async def exists(self, key: str) -> bool:
        self._check("exists")
        return key in self.data

    async def scan(self, cursor: int = 0, match: Optional[str] = None, count: int = 100) -> Tuple[int, List[str]]:
        self._check("scan")
        self.scan_calls.append(cursor)
        if self.scan_pages is not None:
            return self.scan_pages.pop(0)

        keys = list(self.data)
        page = keys[cursor:cursor + self.page_size]
        next_cursor = cursor + self.page_size
        return (next_cursor if next_cursor < len(keys) else 0), page

    async def health_check(self) -> bool:
        return "ping" not in self.fail_on


class MockSearchClient:
    """Recording stand-in for ``shared.storage.search.SearchClient``."""

    def __init__(self):
        self.is_connected = False
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.routing: Dict[str, Optional[str]] = {}
        self.requests: List[Tuple[str, str, Optional[str]]] = []
        self.indices: Dict[str, Dict[str, Any]] = {}
        self.fail_ids: Set[str] = set()

    async def connect(self):
        self.is_connected = True

    async def disconnect(self):
        self.is_connected = False

    async def close(self):
        await self.disconnect()

    async def ensure_index(self, index: str, mappings: Dict[str, Any]) -> bool:
        if index in self.indices:
            return False
        self.indices[index] = mappings
        return True

    async def index_document(self, index: str, document_id: str, document: Dict[str, Any],
                             routing: Optional[str] = None) -> None:
        self.requests.append(("index", document_id, routing))
        if document_id in self.fail_ids:
            raise IndexWriteError("Mock index failure", index=index, document_id=document_id, status=500)
        self.documents[document_id] = document
        self.routing[document_id] = routing

    async def delete_document(self, index: str, document_id: str, routing: Optional[str] = None) -> None:
        self.requests.append(("delete", document_id, routing))
        if document_id in self.fail_ids:
            raise IndexWriteError("Mock delete failure", index=index, document_id=document_id, status=404)
        self.documents.pop(document_id, None)
        self.routing.pop(document_id, None)

    async def health_check(self) -> bool:
        return self.is_connected


class MockKafkaProducer:
    """Recording stand-in for ``shared.framework.producer.KafkaProducer``."""

    def __init__(self, topic: str = "plans.changes.test"):
        self.config = ProducerConfig(topic=topic)
        self.messages: List[Dict[str, Any]] = []
        self.running = False
        self.fail = False

    async def start(self):
        self.running = True
        logger.info("Mock Kafka producer started")

    async def stop(self):
        self.running = False
        logger.info("Mock Kafka producer stopped")

    async def send_message(self, payload: Dict[str, Any], key: Optional[str] = None,
                           headers: Optional[Dict[str, str]] = None) -> None:
        if self.fail:
            raise PublishError("Mock producer failure", topic=self.config.topic)
        self.messages.append({"topic": self.config.topic, "key": key, "payload": payload})

    def get_messages(self) -> List[Dict[str, Any]]:
        return self.messages

    def clear_messages(self):
        self.messages.clear()
