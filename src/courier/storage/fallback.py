"""Layered store with an availability probe and ordered fallback chain.

Every logical operation probes the preferred tier first; if the probe fails
(unreachable, unprovisioned, permission denied) or the operation itself
raises, the operation moves on to the next tier. Callers receive a
``Result`` naming the tier that served them, so "degraded but stored" and
"fully lost" are distinguishable without exceptions.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from courier.exceptions import (
    PermissionDeniedError,
    StorageError,
    StoreUnavailableError,
)
from courier.models import Result, StoreTier

from .base import Document, DocumentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FallbackStore:
    """Routes document operations through an ordered list of tiers.

    Example:
        ```python
        store = FallbackStore(QdrantStore(), JsonFileStore("~/.courier/store"))
        result = await store.write("webhooks", "ws_1", webhook.id, webhook.model_dump(mode="json"))
        if result.degraded:
            ...  # written locally, remote was unavailable
        ```
    """

    def __init__(self, *tiers: DocumentStore, name: str = "store") -> None:
        if not tiers:
            raise ValueError("FallbackStore needs at least one tier")
        self.tiers: tuple[DocumentStore, ...] = tiers
        self.name = name

    async def initialize(self) -> None:
        """Initialize every tier; a tier that fails is left to its probe."""
        for store in self.tiers:
            try:
                await store.initialize()
            except Exception as e:
                logger.warning(
                    "[%s] %s tier failed to initialize, will fall back: %s",
                    self.name,
                    store.tier.value,
                    e,
                )

    async def close(self) -> None:
        for store in self.tiers:
            try:
                await store.close()
            except Exception:
                logger.warning("[%s] error closing %s tier", self.name, store.tier.value, exc_info=True)

    async def _probe(self, store: DocumentStore) -> Exception | None:
        tier = store.tier.value
        try:
            await store.probe()
        except PermissionDeniedError as e:
            logger.warning("[%s] %s tier permission denied, falling back: %s", self.name, tier, e)
            return e
        except StoreUnavailableError as e:
            logger.warning("[%s] %s tier unavailable, falling back: %s", self.name, tier, e)
            return e
        return None

    async def _run(
        self,
        operation: str,
        call: Callable[[DocumentStore], Awaitable[T]],
    ) -> Result[T]:
        last_error: Exception | None = None

        for index, store in enumerate(self.tiers):
            tier = store.tier.value
            probe_error = await self._probe(store)
            if probe_error is not None:
                last_error = probe_error
                continue

            try:
                value = await call(store)
            except Exception as e:
                logger.error("[%s] %s failed on %s tier: %s", self.name, operation, tier, e)
                last_error = e
                continue

            if index > 0:
                logger.info("[%s] %s served by %s tier (degraded)", self.name, operation, tier)
            return Result.success(value, tier=store.tier)

        logger.error("[%s] %s failed on every store tier: %s", self.name, operation, last_error)
        return Result.failure(StorageError(f"{operation} failed on all store tiers: {last_error}"))

    async def _run_each(
        self,
        operation: str,
        call: Callable[[DocumentStore], Awaitable[T]],
    ) -> Result[list[T]]:
        """Run ``call`` on every reachable tier, in order.

        Unreachable or failing tiers are skipped. The result tier is the first
        tier that answered; the call fails only when no tier did.
        """
        values: list[T] = []
        served: StoreTier | None = None
        last_error: Exception | None = None

        for store in self.tiers:
            probe_error = await self._probe(store)
            if probe_error is not None:
                last_error = probe_error
                continue
            try:
                values.append(await call(store))
            except Exception as e:
                logger.error(
                    "[%s] %s failed on %s tier: %s", self.name, operation, store.tier.value, e
                )
                last_error = e
                continue
            served = served or store.tier

        if served is None:
            logger.error("[%s] %s failed on every store tier: %s", self.name, operation, last_error)
            return Result.failure(
                StorageError(f"{operation} failed on all store tiers: {last_error}")
            )
        return Result.success(values, tier=served)

    async def get(self, collection: str, workspace_id: str, key: str) -> Result[Document | None]:
        return await self._run(
            f"get {collection}/{key}",
            lambda store: store.get(collection, workspace_id, key),
        )

    async def read(
        self, collection: str, workspace_id: str, limit: int | None = None
    ) -> Result[list[Document]]:
        return await self._run(
            f"read {collection}",
            lambda store: store.read(collection, workspace_id, limit),
        )

    async def write(
        self, collection: str, workspace_id: str, key: str, document: Document
    ) -> Result[None]:
        return await self._run(
            f"write {collection}/{key}",
            lambda store: store.write(collection, workspace_id, key, document),
        )

    async def delete(self, collection: str, workspace_id: str, key: str) -> Result[bool]:
        return await self._run(
            f"delete {collection}/{key}",
            lambda store: store.delete(collection, workspace_id, key),
        )

    async def prune(
        self, collection: str, workspace_id: str, keep: int, order_by: str
    ) -> Result[int]:
        return await self._run(
            f"prune {collection}",
            lambda store: store.prune(collection, workspace_id, keep, order_by),
        )

    # Records written while a preferred tier was down stay on the lower tier
    # once it recovers. The operations below look at every reachable tier so
    # such records are still found, and removed everywhere they live.

    async def read_all(self, collection: str, workspace_id: str) -> Result[list[Document]]:
        """Documents of every reachable tier, de-duplicated by ``id``.

        When a document exists on several tiers the copy on the earliest tier
        wins.
        """
        result = await self._run_each(
            f"read {collection} (all tiers)",
            lambda store: store.read(collection, workspace_id),
        )
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]

        merged: dict[str, Document] = {}
        anonymous: list[Document] = []
        for documents in result.data or []:
            for document in documents:
                key = document.get("id")
                if key is None:
                    anonymous.append(document)
                else:
                    merged.setdefault(str(key), document)
        return Result.success([*merged.values(), *anonymous], tier=result.tier)

    async def get_any(
        self, collection: str, workspace_id: str, key: str
    ) -> Result[Document | None]:
        """First copy of ``key`` found, searching tiers in order."""
        last_error: Exception | None = None
        answered = False

        for store in self.tiers:
            probe_error = await self._probe(store)
            if probe_error is not None:
                last_error = probe_error
                continue
            try:
                document = await store.get(collection, workspace_id, key)
            except Exception as e:
                logger.error(
                    "[%s] get %s/%s failed on %s tier: %s",
                    self.name,
                    collection,
                    key,
                    store.tier.value,
                    e,
                )
                last_error = e
                continue
            answered = True
            if document is not None:
                return Result.success(document, tier=store.tier)

        if not answered:
            return Result.failure(
                StorageError(f"get {collection}/{key} failed on all store tiers: {last_error}")
            )
        return Result.success(None)

    async def delete_all(self, collection: str, workspace_id: str, key: str) -> Result[bool]:
        """Delete ``key`` from every reachable tier; True if any tier held it."""
        result = await self._run_each(
            f"delete {collection}/{key} (all tiers)",
            lambda store: store.delete(collection, workspace_id, key),
        )
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]
        return Result.success(any(result.data or []), tier=result.tier)
