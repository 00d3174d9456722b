"""Backoff schedule and the durable retry queue.

Backoff (failed attempts so far -> delay before the next attempt):
1 -> 1 min, 2 -> 5 min, 3 -> 15 min, 4 -> 1 h, 5 -> 6 h. With the default
ceiling of 5 attempts a job is never queued after the 5th failure.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta

from pydantic import ValidationError as PydanticValidationError

from courier.config import settings
from courier.models import Payload, Result, RetryJob, utc_now
from courier.storage import QUEUE_COLLECTION, FallbackStore

logger = logging.getLogger(__name__)


class BackoffPolicy:
    """Attempt ceiling plus the delay table used between attempts."""

    def __init__(
        self,
        max_attempts: int | None = None,
        intervals_seconds: Sequence[int] | None = None,
    ) -> None:
        self.max_attempts = max_attempts or settings.retry_max_attempts
        self.intervals = tuple(intervals_seconds or settings.retry_intervals_seconds)
        if len(self.intervals) < self.max_attempts - 1:
            raise ValueError("not enough backoff intervals for the attempt ceiling")

    def delay(self, attempt: int) -> timedelta:
        """Delay to wait after failed attempt number ``attempt`` (1-indexed)."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        index = min(attempt, len(self.intervals)) - 1
        return timedelta(seconds=self.intervals[index])

    def exhausted(self, attempt: int) -> bool:
        """Whether no further attempt follows failed attempt ``attempt``."""
        return attempt >= self.max_attempts


class RetryQueue:
    """Pending retry jobs, one document per job, namespaced by workspace."""

    def __init__(self, store: FallbackStore, policy: BackoffPolicy | None = None) -> None:
        self._store = store
        self.policy = policy or BackoffPolicy()

    async def queue_retry(
        self,
        webhook_id: str,
        workspace_id: str,
        event_type: str,
        payload: Payload,
        attempt: int,
        last_error: str | None = None,
        now: datetime | None = None,
    ) -> Result[RetryJob] | None:
        """Persist a job to re-attempt delivery after failed attempt ``attempt``.

        Returns:
            None when the ceiling is reached (nothing queued), otherwise the
            store result for the new job.
        """
        if self.policy.exhausted(attempt):
            logger.warning(
                "Max attempts (%d) reached for webhook %s, not re-queuing",
                self.policy.max_attempts,
                webhook_id,
            )
            return None

        job = RetryJob.schedule(
            webhook_id=webhook_id,
            workspace_id=workspace_id,
            event_type=event_type,
            payload=payload,
            attempt=attempt,
            delay=self.policy.delay(attempt),
            last_error=last_error,
            now=now,
        )
        written = await self._store.write(
            QUEUE_COLLECTION, workspace_id, job.id, job.model_dump(mode="json")
        )
        if not written.ok:
            logger.error("Retry job for webhook %s lost: %s", webhook_id, written.error)
            return Result.failure(written.error)  # type: ignore[arg-type]

        logger.info(
            "Webhook %s scheduled for retry (after attempt %d, at %s)",
            webhook_id,
            attempt,
            job.next_run_at.isoformat(),
        )
        return Result.success(job, tier=written.tier)

    async def reschedule(
        self,
        job: RetryJob,
        attempt: int,
        last_error: str | None = None,
        now: datetime | None = None,
    ) -> Result[RetryJob] | None:
        """Record another failed attempt on an existing job and push it back.

        Keeps the job id and ``created_at``. Returns None (and leaves the job
        for the caller to remove) once the ceiling is reached.
        """
        if self.policy.exhausted(attempt):
            return None

        now = now or utc_now()
        updated = job.model_copy(
            update={
                "attempt": attempt,
                "next_run_at": now + self.policy.delay(attempt),
                "last_error": last_error,
                "updated_at": now,
            }
        )
        written = await self._store.write(
            QUEUE_COLLECTION, job.workspace_id, job.id, updated.model_dump(mode="json")
        )
        if not written.ok:
            logger.error("Could not reschedule retry job %s: %s", job.id, written.error)
            return Result.failure(written.error)  # type: ignore[arg-type]

        logger.info(
            "Retry job %s rescheduled (after attempt %d, at %s)",
            job.id,
            attempt,
            updated.next_run_at.isoformat(),
        )
        return Result.success(updated, tier=written.tier)

    async def list_jobs(self, workspace_id: str) -> list[RetryJob]:
        """All jobs of a workspace ordered by eligibility time.

        An unreadable queue is reported as empty; the next tick retries.
        """
        result = await self._store.read_all(QUEUE_COLLECTION, workspace_id)
        if not result.ok:
            logger.error("Could not read retry queue for %s: %s", workspace_id, result.error)
            return []

        jobs: list[RetryJob] = []
        for document in result.data or []:
            try:
                jobs.append(RetryJob.model_validate(document))
            except PydanticValidationError:
                logger.warning("Skipping unreadable retry job %s", document.get("id"))
        jobs.sort(key=lambda j: j.next_run_at)
        return jobs

    async def due_jobs(self, workspace_id: str, now: datetime) -> list[RetryJob]:
        return [job for job in await self.list_jobs(workspace_id) if job.is_due(now)]

    async def get_job(self, workspace_id: str, job_id: str) -> RetryJob | None:
        result = await self._store.get_any(QUEUE_COLLECTION, workspace_id, job_id)
        if not result.ok or result.data is None:
            return None
        return RetryJob.model_validate(result.data)

    async def remove_job(self, workspace_id: str, job_id: str) -> bool:
        """Delete a job; an already-missing job is a silent no-op."""
        result = await self._store.delete_all(QUEUE_COLLECTION, workspace_id, job_id)
        if not result.ok:
            logger.error("Could not remove retry job %s: %s", job_id, result.error)
            return False
        return bool(result.data)
