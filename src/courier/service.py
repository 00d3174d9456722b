"""Courier service layer.

Wires the store tiers, subscriber registry, delivery engine, delivery log,
retry queue and dispatcher behind one object.

Example:
    ```python
    from courier.service import WebhookService

    async with WebhookService.create() as courier:
        created = await courier.create_webhook(
            "ws_1", url="https://example.com/hook", events=["page.created"]
        )
        await courier.trigger("ws_1", "page.created", {"pageId": "p_1"})
        courier.start_worker("ws_1")
    ```
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from qdrant_client import AsyncQdrantClient

from courier.config import Settings
from courier.models import (
    DeliveryLogEntry,
    Payload,
    Result,
    RetryJob,
    StoreTier,
    WebhookConfig,
    WebhookEvent,
)
from courier.storage import DocumentStore, FallbackStore, JsonFileStore, QdrantStore
from courier.webhooks import (
    BackoffPolicy,
    DeliveryEngine,
    DeliveryLog,
    DeliveryOutcome,
    EventDispatcher,
    RetryQueue,
    RetryWorker,
    SubscriberRegistry,
)

logger = logging.getLogger(__name__)

EMERGENCY_NAMESPACE = "emergency"


@dataclass
class WebhookService:
    """High-level webhook service.

    Attributes:
        settings: Configuration settings.
        tiers: Every distinct store tier, initialized and closed once each.
        registry: Subscriber CRUD.
        engine: Signed HTTP delivery.
        delivery_log: Append-only attempt log.
        queue: Durable retry queue.
        dispatcher: Event fan-out.
    """

    settings: Settings
    tiers: list[DocumentStore]
    registry: SubscriberRegistry
    engine: DeliveryEngine
    delivery_log: DeliveryLog
    queue: RetryQueue
    dispatcher: EventDispatcher

    _workers: dict[str, RetryWorker] = field(default_factory=dict, init=False, repr=False)

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        qdrant_client: AsyncQdrantClient | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
            qdrant_client: Pre-built Qdrant client for the remote tier. Forces
                the remote tier on even if ``qdrant_url`` is unset.
            http_client: Shared client for webhook POSTs.

        Returns:
            Configured WebhookService instance.
        """
        if settings is None:
            settings = Settings()

        local_dir = settings.resolved_local_store_dir
        local = JsonFileStore(local_dir)
        emergency = JsonFileStore(local_dir, namespace=EMERGENCY_NAMESPACE, tier=StoreTier.EMERGENCY)

        primary: list[DocumentStore] = []
        if settings.remote_enabled or qdrant_client is not None:
            primary.append(
                QdrantStore(
                    url=settings.qdrant_url,
                    api_key=settings.qdrant_api_key,
                    prefix=settings.collection_prefix,
                    max_scroll_limit=settings.storage_max_scroll_limit,
                    client=qdrant_client,
                )
            )
        else:
            logger.info("Remote store disabled, using local store at %s", local_dir)
        primary.append(local)

        registry = SubscriberRegistry(FallbackStore(*primary, name="registry"))
        engine = DeliveryEngine(timeout_seconds=settings.delivery_timeout_seconds, client=http_client)
        delivery_log = DeliveryLog(
            FallbackStore(*primary, name="delivery-log"),
            emergency,
            retention=settings.log_retention,
            emergency_retention=settings.emergency_log_retention,
        )
        queue = RetryQueue(
            FallbackStore(*primary, name="retry-queue"),
            BackoffPolicy(settings.retry_max_attempts, settings.retry_intervals_seconds),
        )
        dispatcher = EventDispatcher(
            registry,
            engine,
            delivery_log,
            queue,
            max_concurrent=settings.max_concurrent_deliveries,
        )

        return cls(
            settings=settings,
            tiers=[*primary, emergency],
            registry=registry,
            engine=engine,
            delivery_log=delivery_log,
            queue=queue,
            dispatcher=dispatcher,
        )

    async def initialize(self) -> None:
        """Initialize store tiers. A tier that fails is skipped by its probe later."""
        for store in self.tiers:
            try:
                await store.initialize()
            except Exception as e:
                logger.warning("%s store tier failed to initialize: %s", store.tier.value, e)

    async def close(self) -> None:
        """Stop every worker and release store clients."""
        await self.stop_all_workers()
        for store in self.tiers:
            try:
                await store.close()
            except Exception:
                logger.warning("Error closing %s store tier", store.tier.value, exc_info=True)

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    # Registry

    async def list_webhooks(self, workspace_id: str) -> Result[list[WebhookConfig]]:
        return await self.registry.list_webhooks(workspace_id)

    async def get_webhook(self, workspace_id: str, webhook_id: str) -> Result[WebhookConfig]:
        return await self.registry.get_webhook(workspace_id, webhook_id)

    async def create_webhook(
        self,
        workspace_id: str,
        url: str,
        events: list[str],
        name: str = "",
        secret: str | None = None,
        enabled: bool = True,
    ) -> Result[WebhookConfig]:
        return await self.registry.create_webhook(
            workspace_id, url, events, name=name, secret=secret, enabled=enabled
        )

    async def update_webhook(
        self, workspace_id: str, webhook_id: str, /, **patch: Any
    ) -> Result[WebhookConfig]:
        return await self.registry.update_webhook(workspace_id, webhook_id, **patch)

    async def delete_webhook(self, workspace_id: str, webhook_id: str) -> Result[bool]:
        return await self.registry.delete_webhook(workspace_id, webhook_id)

    # Dispatch

    async def trigger(
        self,
        workspace_id: str,
        event_type: str,
        payload: Payload | WebhookEvent,
    ) -> Result[list[DeliveryOutcome]]:
        """Fan an event out to every matching webhook of the workspace."""
        return await self.dispatcher.trigger(workspace_id, event_type, payload)

    async def send_test_event(
        self, workspace_id: str, webhook_id: str
    ) -> Result[list[DeliveryOutcome]]:
        """Deliver a ``webhook.test`` event to one webhook.

        The webhook receives it whether or not it subscribes to
        ``webhook.test``, as long as it is enabled.
        """
        found = await self.registry.get_webhook(workspace_id, webhook_id)
        if not found.ok:
            return Result.failure(found.error)  # type: ignore[arg-type]

        event = WebhookEvent.for_test(workspace_id, webhook_id)
        return await self.dispatcher.trigger(workspace_id, event.type, event)

    async def get_logs(self, workspace_id: str, limit: int = 100) -> list[DeliveryLogEntry]:
        return await self.delivery_log.query(workspace_id, limit=limit)

    async def get_queue(self, workspace_id: str) -> list[RetryJob]:
        return await self.queue.list_jobs(workspace_id)

    # Retry workers

    def get_worker(self, workspace_id: str) -> RetryWorker | None:
        return self._workers.get(workspace_id)

    def start_worker(self, workspace_id: str) -> RetryWorker:
        """Start (or return the already running) retry worker for a workspace."""
        worker = self._workers.get(workspace_id)
        if worker is None:
            worker = RetryWorker(
                workspace_id,
                self.registry,
                self.engine,
                self.delivery_log,
                self.queue,
                poll_interval_seconds=self.settings.retry_poll_interval_seconds,
            )
            self._workers[workspace_id] = worker
        worker.start()
        return worker

    async def stop_worker(self, workspace_id: str, wait: bool = False) -> bool:
        """Stop a workspace's worker. Returns False if none was running."""
        worker = self._workers.pop(workspace_id, None)
        if worker is None:
            return False
        was_running = worker.is_running
        await worker.stop(wait=wait)
        return was_running

    async def stop_all_workers(self) -> None:
        for workspace_id in list(self._workers):
            await self.stop_worker(workspace_id)


__all__ = ["EMERGENCY_NAMESPACE", "WebhookService"]
