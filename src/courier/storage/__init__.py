"""Storage tiers for Courier.

Registry, retry queue and delivery log each persist through a
``FallbackStore``: a remote Qdrant tier first, then a local JSON-file tier.
The delivery log additionally keeps an emergency JSON namespace.

Example:
    ```python
    from courier.storage import FallbackStore, JsonFileStore, QdrantStore

    store = FallbackStore(QdrantStore(), JsonFileStore("~/.courier/store"))
    await store.initialize()
    result = await store.read("webhooks", "ws_1")
    ```
"""

from .base import (
    COLLECTION_NAMES,
    LOGS_COLLECTION,
    QUEUE_COLLECTION,
    WEBHOOKS_COLLECTION,
    Document,
    DocumentStore,
    timestamp_key,
)
from .fallback import FallbackStore
from .local import JsonFileStore
from .remote import QdrantStore

__all__ = [
    "COLLECTION_NAMES",
    "LOGS_COLLECTION",
    "QUEUE_COLLECTION",
    "WEBHOOKS_COLLECTION",
    "Document",
    "DocumentStore",
    "FallbackStore",
    "JsonFileStore",
    "QdrantStore",
    "timestamp_key",
]
