"""Tests for the Qdrant remote store tier and its retry policy."""

from __future__ import annotations

from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import httpx
import pytest
from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import UnexpectedResponse

from courier.config import settings
from courier.exceptions import ConfigurationError, PermissionDeniedError, StoreUnavailableError
from courier.models import StoreTier
from courier.storage import LOGS_COLLECTION, QUEUE_COLLECTION, WEBHOOKS_COLLECTION, QdrantStore
from courier.storage.retry import is_transient_error


def _unexpected(status_code: int) -> UnexpectedResponse:
    return UnexpectedResponse(
        status_code=status_code,
        reason_phrase="error",
        content=b"",
        headers=httpx.Headers(),
    )


@pytest.fixture
async def remote_store() -> AsyncIterator[QdrantStore]:
    store = QdrantStore(prefix="test", client=AsyncQdrantClient(location=":memory:"))
    await store.initialize()
    yield store
    await store.close()


class TestQdrantStore:
    @pytest.mark.asyncio
    async def test_tier(self, remote_store):
        assert remote_store.tier is StoreTier.REMOTE

    @pytest.mark.asyncio
    async def test_creates_prefixed_collections(self, remote_store):
        names = {c.name for c in (await remote_store.client.get_collections()).collections}
        assert {"test_webhooks", "test_webhook_logs", "test_webhook_queue"} <= names

    @pytest.mark.asyncio
    async def test_probe_succeeds(self, remote_store):
        await remote_store.probe()

    @pytest.mark.asyncio
    async def test_write_get_roundtrip(self, remote_store):
        doc = {"id": "wh_1", "url": "https://x.example.com", "events": ["page.created"]}
        await remote_store.write(WEBHOOKS_COLLECTION, "ws_1", "wh_1", doc)

        assert await remote_store.get(WEBHOOKS_COLLECTION, "ws_1", "wh_1") == doc

    @pytest.mark.asyncio
    async def test_get_missing(self, remote_store):
        assert await remote_store.get(WEBHOOKS_COLLECTION, "ws_1", "missing") is None

    @pytest.mark.asyncio
    async def test_same_key_in_two_workspaces(self, remote_store):
        await remote_store.write(QUEUE_COLLECTION, "ws_1", "job_1", {"id": "job_1", "ws": 1})
        await remote_store.write(QUEUE_COLLECTION, "ws_2", "job_1", {"id": "job_1", "ws": 2})

        assert (await remote_store.get(QUEUE_COLLECTION, "ws_1", "job_1"))["ws"] == 1
        assert (await remote_store.get(QUEUE_COLLECTION, "ws_2", "job_1"))["ws"] == 2

    @pytest.mark.asyncio
    async def test_read_filters_by_workspace(self, remote_store):
        for i in range(3):
            await remote_store.write(LOGS_COLLECTION, "ws_1", f"log_{i}", {"id": f"log_{i}"})
        await remote_store.write(LOGS_COLLECTION, "ws_2", "log_x", {"id": "log_x"})

        docs = await remote_store.read(LOGS_COLLECTION, "ws_1")

        assert sorted(d["id"] for d in docs) == ["log_0", "log_1", "log_2"]

    @pytest.mark.asyncio
    async def test_read_respects_limit(self, remote_store):
        for i in range(5):
            await remote_store.write(LOGS_COLLECTION, "ws_1", f"log_{i}", {"id": f"log_{i}"})

        assert len(await remote_store.read(LOGS_COLLECTION, "ws_1", limit=2)) == 2

    @pytest.mark.asyncio
    async def test_delete(self, remote_store):
        await remote_store.write(WEBHOOKS_COLLECTION, "ws_1", "wh_1", {"id": "wh_1"})

        assert await remote_store.delete(WEBHOOKS_COLLECTION, "ws_1", "wh_1") is True
        assert await remote_store.delete(WEBHOOKS_COLLECTION, "ws_1", "wh_1") is False

    @pytest.mark.asyncio
    async def test_prune(self, remote_store):
        for i in range(4):
            await remote_store.write(
                LOGS_COLLECTION,
                "ws_1",
                f"log_{i}",
                {"id": f"log_{i}", "timestamp": f"2026-01-0{i + 1}T00:00:00Z"},
            )

        removed = await remote_store.prune(LOGS_COLLECTION, "ws_1", keep=1, order_by="timestamp")

        assert removed == 3
        assert [d["id"] for d in await remote_store.read(LOGS_COLLECTION, "ws_1")] == ["log_3"]

    def test_point_ids_are_deterministic_uuids(self):
        first = QdrantStore._point_id("ws_1", "wh_1")
        assert first == QdrantStore._point_id("ws_1", "wh_1")
        assert first != QdrantStore._point_id("ws_2", "wh_1")
        assert [len(part) for part in first.split("-")] == [8, 4, 4, 4, 12]

    def test_client_requires_initialize(self):
        store = QdrantStore(url="http://localhost:6333")
        with pytest.raises(RuntimeError):
            _ = store.client

    @pytest.mark.asyncio
    async def test_initialize_without_url(self, monkeypatch):
        monkeypatch.setattr(settings, "qdrant_url", None)
        store = QdrantStore()

        with pytest.raises(ConfigurationError):
            await store.initialize()


class TestQdrantProbe:
    """Probe failures are classified without retrying."""

    @pytest.mark.asyncio
    async def test_permission_denied(self):
        client = AsyncMock()
        client.get_collections.side_effect = _unexpected(403)
        store = QdrantStore(client=client)

        with pytest.raises(PermissionDeniedError):
            await store.probe()

    @pytest.mark.asyncio
    async def test_unauthorized_is_permission_denied(self):
        client = AsyncMock()
        client.get_collections.side_effect = _unexpected(401)
        store = QdrantStore(client=client)

        with pytest.raises(PermissionDeniedError):
            await store.probe()

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self):
        client = AsyncMock()
        client.get_collections.side_effect = httpx.ConnectError("refused")
        store = QdrantStore(client=client)

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.probe()
        assert not isinstance(exc_info.value, PermissionDeniedError)
        assert client.get_collections.await_count == 1


class TestTransientErrors:
    def test_connect_error_is_transient(self):
        assert is_transient_error(httpx.ConnectError("refused"))

    def test_timeout_is_transient(self):
        assert is_transient_error(httpx.ReadTimeout("slow"))

    def test_server_error_is_transient(self):
        assert is_transient_error(_unexpected(503))

    def test_client_error_is_not_transient(self):
        assert not is_transient_error(_unexpected(403))
        assert not is_transient_error(_unexpected(404))

    def test_other_errors_are_not_transient(self):
        assert not is_transient_error(ValueError("bad"))
