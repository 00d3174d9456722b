"""Event fan-out to subscribed webhooks.

Matches an event to every enabled, subscribed webhook of the workspace and
delivers to all of them concurrently. Each delivery is independent: its
failure, log entry and retry job never affect the others.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from courier.config import settings
from courier.models import (
    TEST_EVENT_TYPE,
    DeliveryLogEntry,
    DeliveryResult,
    DeliveryStatus,
    Payload,
    Result,
    WebhookConfig,
    WebhookEvent,
)

from .delivery import DeliveryEngine
from .log import DeliveryLog
from .registry import SubscriberRegistry
from .retry import RetryQueue

logger = logging.getLogger(__name__)


class DeliveryOutcome(BaseModel):
    """What happened for one subscriber during a dispatch."""

    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    status: DeliveryStatus
    result: DeliveryResult
    retry_queued: bool = False


def requested_webhook_id(payload: Mapping[str, Any]) -> str | None:
    """Webhook id named by a ``webhook.test`` payload (``data.webhookId``)."""
    data = payload.get("data")
    if not isinstance(data, Mapping):
        return None
    target = data.get("webhookId") or data.get("webhook_id")
    return str(target) if target else None


def select_subscribers(
    webhooks: list[WebhookConfig], event_type: str, payload: Mapping[str, Any]
) -> list[WebhookConfig]:
    """Webhooks that should receive the event.

    ``webhook.test`` with a target id goes to that webhook alone if it is
    enabled, regardless of its subscriptions.
    """
    if event_type == TEST_EVENT_TYPE:
        target = requested_webhook_id(payload)
        if target is not None:
            return [w for w in webhooks if w.id == target and w.enabled]

    return [w for w in webhooks if w.subscribes_to(event_type)]


class EventDispatcher:
    """Fans an event out to matching webhooks.

    Example:
        ```python
        dispatcher = EventDispatcher(registry, engine, delivery_log, queue)
        result = await dispatcher.trigger(
            "ws_1", "page.created", {"type": "page.created", "data": {"id": "p1"}}
        )
        ```
    """

    def __init__(
        self,
        registry: SubscriberRegistry,
        engine: DeliveryEngine,
        delivery_log: DeliveryLog,
        queue: RetryQueue,
        max_concurrent: int | None = None,
    ) -> None:
        self._registry = registry
        self._engine = engine
        self._log = delivery_log
        self._queue = queue
        self._max_concurrent = max_concurrent or settings.max_concurrent_deliveries

    async def trigger(
        self,
        workspace_id: str,
        event_type: str,
        payload: Payload | WebhookEvent,
    ) -> Result[list[DeliveryOutcome]]:
        """Deliver an event to every matching webhook and wait for all of them.

        Individual delivery failures are logged and queued for retry, never
        raised. The result is an error only if the registry cannot be read.
        """
        if isinstance(payload, WebhookEvent):
            payload = payload.to_payload()

        loaded = await self._registry.list_webhooks(workspace_id)
        if not loaded.ok:
            logger.error("Dispatch of %s failed, registry unreadable: %s", event_type, loaded.error)
            return Result.failure(loaded.error)  # type: ignore[arg-type]

        targets = select_subscribers(loaded.data or [], event_type, payload)
        if not targets:
            logger.debug("No webhooks subscribed to %s in %s", event_type, workspace_id)
            return Result.success([], tier=loaded.tier)

        semaphore = asyncio.Semaphore(self._max_concurrent)

        async def deliver_one(webhook: WebhookConfig) -> DeliveryOutcome:
            async with semaphore:
                return await self._deliver_and_record(webhook, workspace_id, event_type, payload)

        results = await asyncio.gather(*(deliver_one(w) for w in targets), return_exceptions=True)

        outcomes: list[DeliveryOutcome] = []
        for webhook, outcome in zip(targets, results, strict=True):
            if isinstance(outcome, BaseException):
                logger.error("Delivery to webhook %s raised: %s", webhook.id, outcome)
            else:
                outcomes.append(outcome)

        logger.info(
            "Dispatched %s to %d webhooks (%d succeeded)",
            event_type,
            len(targets),
            sum(1 for o in outcomes if o.status == "success"),
        )
        return Result.success(outcomes, tier=loaded.tier)

    async def _deliver_and_record(
        self,
        webhook: WebhookConfig,
        workspace_id: str,
        event_type: str,
        payload: Payload,
    ) -> DeliveryOutcome:
        result = await self._engine.deliver(webhook, event_type, payload)

        if result.success:
            status: DeliveryStatus = "success"
        elif self._queue.policy.exhausted(1):
            status = "failed"
        else:
            status = "retrying"

        await self._log.append(
            DeliveryLogEntry.from_result(
                webhook_id=webhook.id,
                workspace_id=workspace_id,
                event_type=event_type,
                payload=payload,
                attempt=1,
                result=result,
                status=status,
            )
        )

        queued = False
        if status == "retrying":
            job = await self._queue.queue_retry(
                webhook.id, workspace_id, event_type, payload, 1, result.error
            )
            queued = job is not None and job.ok

        return DeliveryOutcome(
            webhook_id=webhook.id, status=status, result=result, retry_queued=queued
        )
