"""Background retry worker.

One ``RetryWorker`` per workspace, owned by whoever starts it. Each tick
loads the workspace's due jobs and processes them serially. There is no
distributed lock: two processes running workers for the same workspace may
both deliver a job, which subscribers must tolerate (at-least-once).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from courier.config import settings
from courier.exceptions import NotFoundError, ValidationError
from courier.logging import workspace_context
from courier.models import DeliveryLogEntry, DeliveryStatus, RetryJob, utc_now

from .delivery import DeliveryEngine
from .log import DeliveryLog
from .registry import SubscriberRegistry
from .retry import RetryQueue

logger = logging.getLogger(__name__)


class RetryWorker:
    """Polls a workspace's retry queue on a fixed interval.

    Example:
        ```python
        worker = RetryWorker("ws_1", registry, engine, delivery_log, queue)
        worker.start()      # no-op if already running
        ...
        await worker.stop()  # halts future ticks; an in-flight tick finishes
        ```
    """

    def __init__(
        self,
        workspace_id: str,
        registry: SubscriberRegistry,
        engine: DeliveryEngine,
        delivery_log: DeliveryLog,
        queue: RetryQueue,
        poll_interval_seconds: float | None = None,
    ) -> None:
        self.workspace_id = workspace_id
        self._registry = registry
        self._engine = engine
        self._log = delivery_log
        self._queue = queue
        self.poll_interval = poll_interval_seconds or settings.retry_poll_interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling. Must be called from a running event loop."""
        if self.is_running:
            logger.debug("Retry worker for %s already running", self.workspace_id)
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self._run_loop(), name=f"courier-retry-worker-{self.workspace_id}"
        )
        logger.info("Retry worker started for %s", self.workspace_id)

    async def stop(self, wait: bool = False) -> None:
        """Stop future ticks.

        Args:
            wait: Wait for an in-flight tick to finish before returning.
        """
        if self._task is None:
            return

        self._stop_event.set()
        task, self._task = self._task, None
        if wait:
            await task
        logger.info("Retry worker stopped for %s", self.workspace_id)

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
                break
            except TimeoutError:
                pass

            try:
                await self.run_once()
            except Exception:
                logger.exception("Error in retry worker tick for %s", self.workspace_id)

    async def run_once(self, now: datetime | None = None) -> int:
        """Run a single tick.

        Args:
            now: Reference time for selecting due jobs (default: now).

        Returns:
            Number of jobs processed (delivered or discarded).
        """
        with workspace_context(self.workspace_id):
            now = now or utc_now()
            due = await self._queue.due_jobs(self.workspace_id, now)
            if due:
                logger.debug("Processing %d due retry jobs", len(due))

            processed = 0
            for job in due:
                if await self.process_job(job):
                    processed += 1
            return processed

    async def process_job(self, job: RetryJob) -> bool:
        """Re-attempt one job.

        Returns:
            False if the job was skipped (already claimed elsewhere, or the
            registry could not be read), True otherwise.
        """
        ws = self.workspace_id

        current = await self._queue.get_job(ws, job.id)
        if current is None or current.attempt != job.attempt:
            logger.debug("Retry job %s already handled, skipping", job.id)
            return False
        job = current

        lookup = await self._registry.get_webhook(ws, job.webhook_id)
        if not lookup.ok and not isinstance(lookup.error, (NotFoundError, ValidationError)):
            logger.warning("Registry unavailable, leaving job %s queued: %s", job.id, lookup.error)
            return False

        webhook = lookup.data
        if webhook is None or not webhook.enabled:
            await self._queue.remove_job(ws, job.id)
            logger.info(
                "Dropped retry job %s: webhook %s missing, unreadable or disabled",
                job.id,
                job.webhook_id,
            )
            return True

        result = await self._engine.deliver(webhook, job.event_type, job.payload)
        attempt = job.attempt + 1

        if result.success:
            status: DeliveryStatus = "success"
        elif self._queue.policy.exhausted(attempt):
            status = "failed"
        else:
            status = "retrying"

        await self._log.append(
            DeliveryLogEntry.from_result(
                webhook_id=webhook.id,
                workspace_id=ws,
                event_type=job.event_type,
                payload=job.payload,
                attempt=attempt,
                result=result,
                status=status,
            )
        )

        if status == "retrying":
            await self._queue.reschedule(job, attempt, result.error)
            return True

        await self._queue.remove_job(ws, job.id)
        if status == "failed":
            logger.warning(
                "Webhook %s gave up on %s after %d attempts: %s",
                webhook.id,
                job.event_type,
                attempt,
                result.error,
            )
        return True
