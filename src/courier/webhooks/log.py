"""Append-only delivery log with a three-tier write path.

Writes go to the primary FallbackStore (remote, then local); if both fail,
to an emergency local namespace. Reads merge the emergency namespace back in
so a log read is never silently incomplete because of a past fallback.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from courier.config import settings
from courier.exceptions import StorageError
from courier.models import DeliveryLogEntry, Result
from courier.storage import LOGS_COLLECTION, DocumentStore, FallbackStore

logger = logging.getLogger(__name__)


class DeliveryLog:
    """Best-effort-durable record of every delivery attempt.

    Args:
        store: Primary layered store.
        emergency: Last-resort local store, consulted only when the primary
            chain is exhausted.
        retention: Entries kept per workspace in the primary store.
        emergency_retention: Entries kept per workspace in the emergency store.
    """

    def __init__(
        self,
        store: FallbackStore,
        emergency: DocumentStore,
        retention: int | None = None,
        emergency_retention: int | None = None,
    ) -> None:
        self._store = store
        self._emergency = emergency
        self._retention = retention or settings.log_retention
        self._emergency_retention = emergency_retention or settings.emergency_log_retention

    async def append(self, entry: DeliveryLogEntry) -> Result[DeliveryLogEntry]:
        """Record an attempt. Never raises.

        Returns:
            Result whose tier says where the entry landed; an error result
            means the entry was lost on every tier.
        """
        document = entry.model_dump(mode="json")
        ws = entry.workspace_id

        written = await self._store.write(LOGS_COLLECTION, ws, entry.id, document)
        if written.ok:
            pruned = await self._store.prune(LOGS_COLLECTION, ws, self._retention, "timestamp")
            if not pruned.ok:
                logger.warning("Could not trim delivery log for %s: %s", ws, pruned.error)
            return Result.success(entry, tier=written.tier)

        logger.critical(
            "Delivery log write failed on primary tiers, using emergency store: %s", written.error
        )
        try:
            await self._emergency.write(LOGS_COLLECTION, ws, entry.id, document)
            await self._emergency.prune(LOGS_COLLECTION, ws, self._emergency_retention, "timestamp")
        except Exception as e:
            logger.critical(
                "All delivery log tiers failed; entry %s for webhook %s lost: %s",
                entry.id,
                entry.webhook_id,
                e,
            )
            return Result.failure(StorageError(f"delivery log entry {entry.id} lost: {e}"))

        logger.warning("Delivery log entry %s written to emergency store", entry.id)
        return Result.success(entry, tier=self._emergency.tier)

    async def query(self, workspace_id: str, limit: int = 100) -> list[DeliveryLogEntry]:
        """Newest-first entries for a workspace, merged with the emergency store."""
        documents = []

        primary = await self._store.read(LOGS_COLLECTION, workspace_id)
        if primary.ok:
            documents.extend(primary.data or [])
        else:
            logger.error("Delivery log read failed on primary tiers: %s", primary.error)

        try:
            documents.extend(await self._emergency.read(LOGS_COLLECTION, workspace_id))
        except Exception as e:
            logger.error("Emergency delivery log read failed: %s", e)

        entries: dict[str, DeliveryLogEntry] = {}
        for document in documents:
            try:
                entry = DeliveryLogEntry.model_validate(document)
            except PydanticValidationError:
                logger.warning("Skipping unreadable delivery log record %s", document.get("id"))
                continue
            entries.setdefault(entry.id, entry)

        ordered = sorted(entries.values(), key=lambda e: e.timestamp, reverse=True)
        return ordered[:limit]
