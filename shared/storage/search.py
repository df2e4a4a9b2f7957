"""
Elasticsearch async client wrapper for the plan search index.

Talks to the Elasticsearch REST API over a pooled aiohttp session. Only the
handful of calls the projection pipeline needs are exposed: index bootstrap,
routed document upsert, routed document delete and ping.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiohttp
import structlog

from shared.utils.errors import IndexWriteError


logger = structlog.get_logger()


@dataclass
class SearchClientConfig:
    """Elasticsearch configuration."""
    url: str
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: int = 30
    max_connections: int = 10
    refresh: str = "true"


class SearchClient:
    """
    Async Elasticsearch client with connection pooling.

    Non-2xx responses and transport failures are raised as ``IndexWriteError``
    carrying the index, document id and HTTP status.
    """

    def __init__(self, config: SearchClientConfig | str):
        if isinstance(config, str):
            config = SearchClientConfig(url=config)
        self.config = config
        self.base_url = config.url.rstrip("/")
        self.logger = structlog.get_logger("search-client")
        self.session: Optional[aiohttp.ClientSession] = None
        self._semaphore = asyncio.Semaphore(self.config.max_connections)
        self.is_connected: bool = False

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self.is_connected:
            return

        connector = aiohttp.TCPConnector(limit=self.config.max_connections)
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        auth = None
        if self.config.username:
            auth = aiohttp.BasicAuth(self.config.username, self.config.password or "")

        self.session = aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            auth=auth,
        )

        self.is_connected = True
        self.logger.info("Connected to Elasticsearch", url=self.base_url)

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

        self.is_connected = False
        self.logger.info("Disconnected from Elasticsearch")

    async def close(self) -> None:
        """Alias for disconnect."""
        await self.disconnect()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> tuple[int, Any]:
        if not self.session:
            await self.connect()

        async with self._semaphore:
            async with self.session.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=body,
            ) as response:
                if response.content_type == "application/json":
                    payload = await response.json()
                else:
                    payload = await response.text()
                return response.status, payload

    async def ensure_index(self, index: str, mappings: Dict[str, Any]) -> bool:
        """
        Create the index with the given mappings.

        Returns True when the index was created, False when it already existed.
        """
        try:
            status, payload = await self._request("PUT", f"/{quote(index, safe='')}", body={"mappings": mappings})
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise IndexWriteError(f"Failed to create index: {e}", index=index) from e

        if status < 300:
            self.logger.info("Index created", index=index)
            return True

        error_type = ""
        if isinstance(payload, dict):
            error_type = (payload.get("error") or {}).get("type", "")
        if error_type == "resource_already_exists_exception":
            self.logger.info("Index already exists", index=index)
            return False

        raise IndexWriteError(
            f"Failed to create index: {payload}", index=index, status=status
        )

    async def index_document(
        self,
        index: str,
        document_id: str,
        document: Dict[str, Any],
        routing: Optional[str] = None,
    ) -> None:
        """Create or replace a document, optionally routed to a shard."""
        params = {"refresh": self.config.refresh}
        if routing:
            params["routing"] = routing

        try:
            status, payload = await self._request(
                "PUT",
                f"/{quote(index, safe='')}/_doc/{quote(document_id, safe='')}",
                params=params,
                body=document,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise IndexWriteError(
                f"Failed to index document: {e}", index=index, document_id=document_id
            ) from e

        if status >= 300:
            raise IndexWriteError(
                f"Failed to index document: {payload}",
                index=index,
                document_id=document_id,
                status=status,
            )
        self.logger.debug("Document indexed", index=index, document_id=document_id, routing=routing)

    async def delete_document(
        self,
        index: str,
        document_id: str,
        routing: Optional[str] = None,
    ) -> None:
        """Delete a document by id, optionally routed to a shard."""
        params = {"refresh": self.config.refresh}
        if routing:
            params["routing"] = routing

        try:
            status, payload = await self._request(
                "DELETE",
                f"/{quote(index, safe='')}/_doc/{quote(document_id, safe='')}",
                params=params,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise IndexWriteError(
                f"Failed to delete document: {e}", index=index, document_id=document_id
            ) from e

        if status >= 300:
            raise IndexWriteError(
                f"Failed to delete document: {payload}",
                index=index,
                document_id=document_id,
                status=status,
            )
        self.logger.debug("Document deleted", index=index, document_id=document_id, routing=routing)

    async def health_check(self) -> bool:
        """Check Elasticsearch reachability."""
        try:
            status, _ = await self._request("GET", "/")
            return status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error("Elasticsearch health check failed", error=str(e))
            return False

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
