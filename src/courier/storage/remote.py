"""Qdrant-backed remote document store.

Qdrant is used as a plain document store here: every point carries a
constant one-dimensional placeholder vector and the document lives in the
payload, next to an indexed ``workspace_id`` used for filtering.

Example:
    ```python
    from courier.storage import QdrantStore

    store = QdrantStore(url="http://localhost:6333")
    await store.initialize()
    await store.write("webhooks", "ws_1", "wh_1", {"id": "wh_1", ...})
    ```
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any

from qdrant_client import AsyncQdrantClient, models
from qdrant_client.http.exceptions import UnexpectedResponse

from courier.config import settings
from courier.exceptions import ConfigurationError, PermissionDeniedError, StoreUnavailableError
from courier.models import StoreTier

from .base import COLLECTION_NAMES, WEBHOOKS_COLLECTION, Document, DocumentStore
from .retry import remote_retry

logger = logging.getLogger(__name__)

# Documents need no similarity search; every point gets this vector
PLACEHOLDER_VECTOR = [1.0]

SCROLL_PAGE_SIZE = 256


class QdrantStore(DocumentStore):
    """Remote tier backed by an async Qdrant client.

    Attributes:
        client: Async Qdrant client instance.
    """

    tier = StoreTier.REMOTE

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        max_scroll_limit: int | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            max_scroll_limit: Cap on documents returned by one read.
            client: Pre-built client (e.g. ``AsyncQdrantClient(location=":memory:")``).
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._max_scroll_limit = max_scroll_limit or settings.storage_max_scroll_limit
        self._client = client
        self._collections_ready = False

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("QdrantStore not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Create the client and ensure collections exist."""
        if self._client is None:
            if not self._url:
                raise ConfigurationError("Qdrant URL is not configured (COURIER_QDRANT_URL)")
            self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        await self._ensure_collections()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collections_ready = False

    def _collection_name(self, collection: str) -> str:
        return f"{self._prefix}_{collection}"

    @staticmethod
    def _point_id(workspace_id: str, key: str) -> str:
        """Deterministic UUID-format point id for a workspace-scoped key.

        Qdrant requires point IDs to be UUIDs or unsigned integers.
        """
        h = hashlib.sha256(f"{workspace_id}/{key}".encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    @staticmethod
    def _workspace_filter(workspace_id: str) -> models.Filter:
        return models.Filter(
            must=[
                models.FieldCondition(
                    key="workspace_id",
                    match=models.MatchValue(value=workspace_id),
                )
            ]
        )

    async def _ensure_collections(self) -> None:
        existing = {c.name for c in (await self.client.get_collections()).collections}

        for collection in COLLECTION_NAMES:
            name = self._collection_name(collection)
            if name in existing:
                continue
            await self.client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            await self.client.create_payload_index(
                collection_name=name,
                field_name="workspace_id",
                field_schema=models.PayloadSchemaType.KEYWORD,
            )

        self._collections_ready = True

    async def probe(self) -> None:
        """Bounded read against the webhooks collection."""
        try:
            if not self._collections_ready:
                await self._ensure_collections()
            await self.client.scroll(
                collection_name=self._collection_name(WEBHOOKS_COLLECTION),
                limit=1,
                with_payload=False,
                with_vectors=False,
            )
        except UnexpectedResponse as e:
            if e.status_code in (401, 403):
                raise PermissionDeniedError(f"Qdrant refused access: {e}") from e
            raise StoreUnavailableError(f"Qdrant unavailable: {e}") from e
        except Exception as e:
            raise StoreUnavailableError(f"Qdrant unavailable: {e}") from e

    @remote_retry
    async def get(self, collection: str, workspace_id: str, key: str) -> Document | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(collection),
            ids=[self._point_id(workspace_id, key)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return self._payload_to_document(results[0].payload)

    @remote_retry
    async def read(
        self, collection: str, workspace_id: str, limit: int | None = None
    ) -> list[Document]:
        cap = min(limit, self._max_scroll_limit) if limit else self._max_scroll_limit
        documents: list[Document] = []
        offset: Any = None

        while len(documents) < cap:
            points, offset = await self.client.scroll(
                collection_name=self._collection_name(collection),
                scroll_filter=self._workspace_filter(workspace_id),
                limit=min(SCROLL_PAGE_SIZE, cap - len(documents)),
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            documents.extend(
                self._payload_to_document(p.payload) for p in points if p.payload is not None
            )
            if offset is None:
                break

        return documents

    @remote_retry
    async def write(self, collection: str, workspace_id: str, key: str, document: Document) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(collection),
            points=[
                models.PointStruct(
                    id=self._point_id(workspace_id, key),
                    vector=PLACEHOLDER_VECTOR,
                    payload={"workspace_id": workspace_id, "key": key, "document": document},
                )
            ],
        )

    @remote_retry
    async def delete(self, collection: str, workspace_id: str, key: str) -> bool:
        point_id = self._point_id(workspace_id, key)
        name = self._collection_name(collection)

        existing = await self.client.retrieve(
            collection_name=name, ids=[point_id], with_payload=False
        )
        if not existing:
            return False

        await self.client.delete(
            collection_name=name,
            points_selector=models.PointIdsList(points=[point_id]),
        )
        return True

    @staticmethod
    def _payload_to_document(payload: dict[str, Any]) -> Document:
        return dict(payload.get("document") or {})
