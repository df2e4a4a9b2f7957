"""Unit tests for storage components."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.storage.redis import RedisClient, RedisConfig
from shared.storage.search import SearchClient, SearchClientConfig
from shared.utils.errors import IndexWriteError, StorageError


def connected_redis():
    client = RedisClient(RedisConfig(url="redis://localhost:6379/0"))
    connection = MagicMock()
    client.client = connection
    client.is_connected = True
    return client, connection


def pipeline_mock(results):
    pipe = MagicMock()
    pipe.__aenter__.return_value = pipe
    pipe.__aexit__.return_value = False
    pipe.execute = AsyncMock(return_value=results)
    return pipe


class TestRedisClient:
    """Test RedisClient class."""

    @pytest.mark.asyncio
    async def test_client_lifecycle(self):
        """Test client lifecycle."""
        client = RedisClient("redis://:secret@localhost:6379/0")

        mock_connection = MagicMock()
        mock_connection.ping = AsyncMock(return_value=True)
        mock_connection.aclose = AsyncMock()

        with patch("shared.storage.redis.redis.from_url", return_value=mock_connection) as from_url:
            await client.connect()
            assert client.is_connected
            assert from_url.call_args.kwargs["decode_responses"] is True

            await client.close()
            mock_connection.aclose.assert_awaited()
            assert not client.is_connected

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        client = RedisClient("redis://localhost:6379/0")
        mock_connection = MagicMock()
        mock_connection.ping = AsyncMock(side_effect=RedisConnectionError("refused"))

        with patch("shared.storage.redis.redis.from_url", return_value=mock_connection):
            with pytest.raises(StorageError):
                await client.connect()
        assert client.client is None

    @pytest.mark.asyncio
    async def test_get(self):
        client, connection = connected_redis()
        connection.get = AsyncMock(return_value='{"objectId": "P1"}')

        assert await client.get("P1") == '{"objectId": "P1"}'
        connection.get.assert_awaited_with("P1")

    @pytest.mark.asyncio
    async def test_errors_become_storage_errors(self):
        client, connection = connected_redis()
        connection.get = AsyncMock(side_effect=RedisConnectionError("reset"))

        with pytest.raises(StorageError) as exc_info:
            await client.get("P1")
        assert exc_info.value.details["key"] == "P1"

    @pytest.mark.asyncio
    async def test_set_many_is_transactional(self):
        client, connection = connected_redis()
        pipe = pipeline_mock([True, True])
        connection.pipeline.return_value = pipe

        await client.set_many({"P1": "{}", "P1:etag": "abc"})

        connection.pipeline.assert_called_once_with(transaction=True)
        assert [c.args for c in pipe.set.call_args_list] == [("P1", "{}"), ("P1:etag", "abc")]
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_set_many_deletes_inside_the_transaction(self):
        client, connection = connected_redis()
        pipe = pipeline_mock([True, 1])
        connection.pipeline.return_value = pipe

        await client.set_many({"P1": "{}"}, delete=["S2"])

        connection.pipeline.assert_called_once_with(transaction=True)
        pipe.delete.assert_called_once_with("S2")
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_many_is_pipelined(self):
        client, connection = connected_redis()
        pipe = pipeline_mock([1, 0, 1])
        connection.pipeline.return_value = pipe

        deleted = await client.delete_many(["P1", "P1:etag", "C1"])

        assert deleted == 2
        connection.pipeline.assert_called_once_with(transaction=False)
        assert pipe.delete.call_count == 3

    @pytest.mark.asyncio
    async def test_delete_many_empty(self):
        client, connection = connected_redis()

        assert await client.delete_many([]) == 0
        connection.pipeline.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_many_failure(self):
        client, connection = connected_redis()
        pipe = pipeline_mock([])
        pipe.execute = AsyncMock(side_effect=RedisConnectionError("reset"))
        connection.pipeline.return_value = pipe

        with pytest.raises(StorageError):
            await client.delete_many(["P1"])

    @pytest.mark.asyncio
    async def test_scan(self):
        client, connection = connected_redis()
        connection.scan = AsyncMock(return_value=("42", ["P1", "P1:etag"]))

        cursor, keys = await client.scan(cursor=0, count=10)

        assert cursor == 42
        assert keys == ["P1", "P1:etag"]
        connection.scan.assert_awaited_with(cursor=0, match=None, count=10)

    @pytest.mark.asyncio
    async def test_exists(self):
        client, connection = connected_redis()
        connection.exists = AsyncMock(return_value=1)

        assert await client.exists("P1")


class TestSearchClient:
    """Test SearchClient class."""

    def _client(self):
        client = SearchClient(SearchClientConfig(url="http://search:9200/"))
        client._request = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_lifecycle(self):
        client = SearchClient(SearchClientConfig(url="http://search:9200", username="elastic", password="pw"))

        await client.connect()
        assert client.is_connected
        assert client.session is not None
        await client.close()
        assert not client.is_connected
        assert client.session is None

    @pytest.mark.asyncio
    async def test_index_document_with_routing(self):
        client = self._client()
        client._request.return_value = (201, {"result": "created"})

        await client.index_document("plans", "S1", {"name": "x"}, routing="L1")

        client._request.assert_awaited_once_with(
            "PUT", "/plans/_doc/S1", params={"refresh": "true", "routing": "L1"}, body={"name": "x"}
        )
        assert client.base_url == "http://search:9200"

    @pytest.mark.asyncio
    async def test_index_document_rejected(self):
        client = self._client()
        client._request.return_value = (400, {"error": {"type": "mapper_parsing_exception"}})

        with pytest.raises(IndexWriteError) as exc_info:
            await client.index_document("plans", "P1", {})
        assert exc_info.value.status == 400
        assert exc_info.value.details["document_id"] == "P1"

    @pytest.mark.asyncio
    async def test_delete_without_routing(self):
        client = self._client()
        client._request.return_value = (200, {"result": "deleted"})

        await client.delete_document("plans", "P1")

        client._request.assert_awaited_once_with("DELETE", "/plans/_doc/P1", params={"refresh": "true"})

    @pytest.mark.asyncio
    async def test_delete_missing_document(self):
        client = self._client()
        client._request.return_value = (404, {"result": "not_found"})

        with pytest.raises(IndexWriteError):
            await client.delete_document("plans", "P1", routing="P1")

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        client = self._client()
        client._request.side_effect = aiohttp.ClientConnectionError("refused")

        with pytest.raises(IndexWriteError):
            await client.index_document("plans", "P1", {})

    @pytest.mark.asyncio
    async def test_ensure_index(self):
        client = self._client()
        client._request.return_value = (200, {"acknowledged": True})

        assert await client.ensure_index("plans", {"properties": {}})
        client._request.assert_awaited_once_with("PUT", "/plans", body={"mappings": {"properties": {}}})

    @pytest.mark.asyncio
    async def test_ensure_index_already_exists(self):
        client = self._client()
        client._request.return_value = (400, {"error": {"type": "resource_already_exists_exception"}})

        assert not await client.ensure_index("plans", {})

    @pytest.mark.asyncio
    async def test_ensure_index_failure(self):
        client = self._client()
        client._request.return_value = (403, {"error": {"type": "security_exception"}})

        with pytest.raises(IndexWriteError):
            await client.ensure_index("plans", {})

    @pytest.mark.asyncio
    async def test_health_check(self):
        client = self._client()
        client._request.return_value = (200, {"cluster_name": "plans"})
        assert await client.health_check()

        client._request.side_effect = asyncio.TimeoutError()
        assert not await client.health_check()
