"""Tests for the append-only delivery log."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from courier.exceptions import StoreUnavailableError
from courier.models import DeliveryLogEntry, StoreTier, utc_now
from courier.storage import LOGS_COLLECTION, FallbackStore
from courier.webhooks import DeliveryLog

from stubs import StubRemote


def make_entry(i: int = 0, workspace_id: str = "ws_1", **overrides) -> DeliveryLogEntry:
    fields = {
        "webhook_id": "wh_1",
        "workspace_id": workspace_id,
        "event_type": "page.created",
        "status": "success",
        "attempt": 1,
        "response_status": 200,
        "timestamp": utc_now() + timedelta(seconds=i),
        "payload": {"n": i},
    }
    fields.update(overrides)
    return DeliveryLogEntry(**fields)


class BrokenEmergency(StubRemote):
    tier = StoreTier.EMERGENCY


class TestAppend:
    @pytest.mark.asyncio
    async def test_append_to_primary(self, delivery_log, local_store):
        entry = make_entry()

        result = await delivery_log.append(entry)

        assert result.ok
        assert result.tier is StoreTier.LOCAL
        assert await local_store.get(LOGS_COLLECTION, "ws_1", entry.id) is not None

    @pytest.mark.asyncio
    async def test_retention_evicts_oldest(self, store, emergency_store):
        log = DeliveryLog(store, emergency_store, retention=3, emergency_retention=3)
        entries = [make_entry(i) for i in range(5)]
        for entry in entries:
            await log.append(entry)

        kept = await log.query("ws_1")

        assert [e.id for e in kept] == [entries[4].id, entries[3].id, entries[2].id]

    @pytest.mark.asyncio
    async def test_retention_keeps_latest_within_same_second(self, store, emergency_store):
        log = DeliveryLog(store, emergency_store, retention=1, emergency_retention=1)
        second = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
        older = make_entry(timestamp=second)
        newer = make_entry(timestamp=second + timedelta(milliseconds=500))

        await log.append(older)
        await log.append(newer)

        assert [e.id for e in await log.query("ws_1")] == [newer.id]

    @pytest.mark.asyncio
    async def test_emergency_when_primary_exhausted(self, emergency_store, caplog):
        primary = FallbackStore(StubRemote(probe_error=StoreUnavailableError("down")))
        log = DeliveryLog(primary, emergency_store, retention=10, emergency_retention=10)
        entry = make_entry()

        result = await log.append(entry)

        assert result.ok
        assert result.tier is StoreTier.EMERGENCY
        assert await emergency_store.get(LOGS_COLLECTION, "ws_1", entry.id) is not None
        assert any(r.levelname == "CRITICAL" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_all_tiers_failed_returns_error(self):
        primary = FallbackStore(StubRemote(probe_error=StoreUnavailableError("down")))
        log = DeliveryLog(primary, BrokenEmergency(op_error=OSError("read-only fs")))

        result = await log.append(make_entry())

        assert not result.ok
        assert "lost" in result.error.message

    @pytest.mark.asyncio
    async def test_emergency_retention(self, emergency_store):
        primary = FallbackStore(StubRemote(probe_error=StoreUnavailableError("down")))
        log = DeliveryLog(primary, emergency_store, retention=10, emergency_retention=2)
        for i in range(4):
            await log.append(make_entry(i))

        assert len(await emergency_store.read(LOGS_COLLECTION, "ws_1")) == 2


class TestQuery:
    @pytest.mark.asyncio
    async def test_newest_first_with_limit(self, delivery_log):
        entries = [make_entry(i) for i in range(5)]
        for entry in reversed(entries):
            await delivery_log.append(entry)

        result = await delivery_log.query("ws_1", limit=2)

        assert [e.id for e in result] == [entries[4].id, entries[3].id]

    @pytest.mark.asyncio
    async def test_workspace_scoped(self, delivery_log):
        await delivery_log.append(make_entry(workspace_id="ws_2"))
        assert await delivery_log.query("ws_1") == []

    @pytest.mark.asyncio
    async def test_merges_emergency_entries(self, delivery_log, emergency_store):
        primary_entry = make_entry(0)
        emergency_entry = make_entry(1, status="retrying", attempt=2)
        await delivery_log.append(primary_entry)
        await emergency_store.write(
            LOGS_COLLECTION, "ws_1", emergency_entry.id, emergency_entry.model_dump(mode="json")
        )

        result = await delivery_log.query("ws_1")

        assert [e.id for e in result] == [emergency_entry.id, primary_entry.id]

    @pytest.mark.asyncio
    async def test_unreadable_records_skipped(self, delivery_log, local_store):
        await delivery_log.append(make_entry())
        await local_store.write(LOGS_COLLECTION, "ws_1", "log_bad", {"id": "log_bad"})

        assert len(await delivery_log.query("ws_1")) == 1
