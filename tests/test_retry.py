"""Tests for the backoff policy and the durable retry queue."""

from __future__ import annotations

from datetime import timedelta

import pytest

from courier.exceptions import StoreUnavailableError
from courier.models import RetryJob, utc_now
from courier.storage import QUEUE_COLLECTION, FallbackStore
from courier.webhooks import BackoffPolicy, RetryQueue

from stubs import StubRemote


class TestBackoffPolicy:
    """Tests for the delay table and attempt ceiling."""

    @pytest.mark.parametrize(
        ("attempt", "seconds"),
        [(1, 60), (2, 300), (3, 900), (4, 3600), (5, 21600)],
    )
    def test_delay_table(self, policy, attempt, seconds):
        assert policy.delay(attempt) == timedelta(seconds=seconds)

    def test_delay_clamps_past_table(self, policy):
        assert policy.delay(9) == timedelta(seconds=21600)

    def test_delay_rejects_attempt_zero(self, policy):
        with pytest.raises(ValueError):
            policy.delay(0)

    def test_exhausted_at_ceiling(self, policy):
        assert not policy.exhausted(4)
        assert policy.exhausted(5)
        assert policy.exhausted(6)

    def test_too_few_intervals_rejected(self):
        with pytest.raises(ValueError):
            BackoffPolicy(max_attempts=5, intervals_seconds=[1, 2])

    def test_defaults_from_settings(self):
        policy = BackoffPolicy()
        assert policy.max_attempts == 5
        assert policy.intervals == (60, 300, 900, 3600, 21600)


class TestRetryQueue:
    @pytest.mark.asyncio
    async def test_queue_retry_schedules_after_backoff(self, queue):
        now = utc_now()

        result = await queue.queue_retry(
            "wh_1", "ws_1", "page.created", {"n": 1}, attempt=1, last_error="HTTP 500", now=now
        )

        job = result.unwrap()
        assert job.id.startswith("job_")
        assert job.attempt == 1
        assert job.next_run_at == now + timedelta(seconds=60)
        assert job.last_error == "HTTP 500"
        assert job.created_at == now

    @pytest.mark.asyncio
    async def test_queue_retry_persists(self, queue, local_store):
        job = (await queue.queue_retry("wh_1", "ws_1", "page.created", {}, attempt=2)).unwrap()

        stored = await local_store.get(QUEUE_COLLECTION, "ws_1", job.id)
        assert RetryJob.model_validate(stored) == job

    @pytest.mark.asyncio
    async def test_queue_retry_at_ceiling_queues_nothing(self, queue):
        assert await queue.queue_retry("wh_1", "ws_1", "page.created", {}, attempt=5) is None
        assert await queue.list_jobs("ws_1") == []

    @pytest.mark.asyncio
    async def test_list_jobs_ordered_by_next_run(self, queue):
        now = utc_now()
        late = (await queue.queue_retry("wh_1", "ws_1", "e", {}, attempt=3, now=now)).unwrap()
        early = (await queue.queue_retry("wh_1", "ws_1", "e", {}, attempt=1, now=now)).unwrap()

        assert [j.id for j in await queue.list_jobs("ws_1")] == [early.id, late.id]

    @pytest.mark.asyncio
    async def test_due_jobs(self, queue):
        now = utc_now()
        job = (await queue.queue_retry("wh_1", "ws_1", "e", {}, attempt=1, now=now)).unwrap()

        assert await queue.due_jobs("ws_1", now + timedelta(seconds=59)) == []
        assert [j.id for j in await queue.due_jobs("ws_1", now + timedelta(seconds=60))] == [
            job.id
        ]

    @pytest.mark.asyncio
    async def test_get_and_remove(self, queue):
        job = (await queue.queue_retry("wh_1", "ws_1", "e", {}, attempt=1)).unwrap()

        assert await queue.get_job("ws_1", job.id) == job
        assert await queue.remove_job("ws_1", job.id) is True
        assert await queue.get_job("ws_1", job.id) is None
        assert await queue.remove_job("ws_1", job.id) is False

    @pytest.mark.asyncio
    async def test_reschedule_keeps_identity(self, queue):
        start = utc_now()
        job = (await queue.queue_retry("wh_1", "ws_1", "e", {}, attempt=1, now=start)).unwrap()
        later = start + timedelta(minutes=2)

        updated = (await queue.reschedule(job, 2, "HTTP 503", now=later)).unwrap()

        assert updated.id == job.id
        assert updated.attempt == 2
        assert updated.next_run_at == later + timedelta(seconds=300)
        assert updated.last_error == "HTTP 503"
        assert updated.created_at == job.created_at
        assert updated.updated_at == later
        assert [j.attempt for j in await queue.list_jobs("ws_1")] == [2]

    @pytest.mark.asyncio
    async def test_reschedule_at_ceiling_returns_none(self, queue):
        job = (await queue.queue_retry("wh_1", "ws_1", "e", {}, attempt=4)).unwrap()
        assert await queue.reschedule(job, 5) is None


class TestQueueAcrossTiers:
    @pytest.fixture
    def remote(self) -> StubRemote:
        return StubRemote(probe_error=StoreUnavailableError("down"))

    @pytest.fixture
    def layered_queue(self, remote, local_store, policy) -> RetryQueue:
        return RetryQueue(FallbackStore(remote, local_store), policy)

    @pytest.mark.asyncio
    async def test_job_queued_during_outage_survives_recovery(
        self, layered_queue, remote, local_store
    ):
        job = (await layered_queue.queue_retry("wh_1", "ws_1", "e", {}, attempt=1)).unwrap()
        assert await local_store.get(QUEUE_COLLECTION, "ws_1", job.id) is not None

        remote.probe_error = None

        assert [j.id for j in await layered_queue.list_jobs("ws_1")] == [job.id]
        assert await layered_queue.get_job("ws_1", job.id) == job
        assert await layered_queue.remove_job("ws_1", job.id) is True
        assert await layered_queue.list_jobs("ws_1") == []

    @pytest.mark.asyncio
    async def test_rescheduled_copy_shadows_stale_one(self, layered_queue, remote):
        job = (await layered_queue.queue_retry("wh_1", "ws_1", "e", {}, attempt=1)).unwrap()
        remote.probe_error = None

        updated = (await layered_queue.reschedule(job, 2, "HTTP 503")).unwrap()

        assert remote.documents[job.id]["attempt"] == 2
        assert await layered_queue.list_jobs("ws_1") == [updated]
        assert (await layered_queue.get_job("ws_1", job.id)).attempt == 2
