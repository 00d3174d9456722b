"""Document store contract shared by every persistence tier.

Each tier (remote Qdrant, local JSON files, emergency JSON files) stores
plain JSON documents grouped by collection and namespaced by workspace, so
the fallback adapter can route any operation to any tier.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from courier.models import StoreTier

# Logical collection names
WEBHOOKS_COLLECTION = "webhooks"
LOGS_COLLECTION = "webhook_logs"
QUEUE_COLLECTION = "webhook_queue"

COLLECTION_NAMES = (WEBHOOKS_COLLECTION, LOGS_COLLECTION, QUEUE_COLLECTION)

Document = dict[str, Any]

_EPOCH = datetime.min.replace(tzinfo=UTC)


def timestamp_key(document: Document, field: str) -> datetime:
    """Parsed ISO-8601 timestamp of ``document[field]`` for ordering.

    Compared as datetimes, not strings: ``12:00:00Z`` and ``12:00:00.5Z``
    do not sort lexically. Missing or unparseable values sort oldest.
    """
    value = document.get(field)
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return _EPOCH
    else:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class DocumentStore(ABC):
    """A persistence tier holding JSON documents keyed by id.

    Implementations raise ``StoreUnavailableError`` from :meth:`probe` when
    they cannot serve requests, and may raise anything from the data
    operations; ``FallbackStore`` turns both into a routing decision.
    """

    tier: StoreTier = StoreTier.LOCAL

    async def initialize(self) -> None:
        """Prepare the tier for use. Default: nothing to do."""

    async def close(self) -> None:
        """Release resources held by the tier. Default: nothing to do."""

    @abstractmethod
    async def probe(self) -> None:
        """Cheap, bounded availability check."""

    @abstractmethod
    async def get(self, collection: str, workspace_id: str, key: str) -> Document | None:
        """Fetch one document, or None if absent."""

    @abstractmethod
    async def read(
        self, collection: str, workspace_id: str, limit: int | None = None
    ) -> list[Document]:
        """Fetch documents of a workspace (unordered)."""

    @abstractmethod
    async def write(self, collection: str, workspace_id: str, key: str, document: Document) -> None:
        """Insert or replace a document."""

    @abstractmethod
    async def delete(self, collection: str, workspace_id: str, key: str) -> bool:
        """Delete a document. Returns False if it did not exist."""

    async def prune(self, collection: str, workspace_id: str, keep: int, order_by: str) -> int:
        """Keep only the ``keep`` newest documents by ``order_by``.

        ``order_by`` must name an ISO-8601 timestamp field.

        Returns:
            Number of documents removed.
        """
        documents = await self.read(collection, workspace_id)
        if len(documents) <= keep:
            return 0

        documents.sort(key=lambda d: timestamp_key(d, order_by), reverse=True)
        removed = 0
        for document in documents[keep:]:
            if await self.delete(collection, workspace_id, str(document["id"])):
                removed += 1
        return removed
