"""JSON-file document store used for the local and emergency tiers.

Each ``(namespace, collection, workspace)`` triple maps to one JSON file
holding ``{key: document}``. Files are replaced atomically, so a crash mid
write leaves the previous version intact.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from pathlib import Path

from courier.exceptions import StorageError, StoreUnavailableError
from courier.models import StoreTier

from .base import Document, DocumentStore, timestamp_key

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class JsonFileStore(DocumentStore):
    """Local persistent tier writing one JSON file per namespace.

    Args:
        root: Directory holding the namespace files.
        namespace: Optional file-name prefix separating independent stores
            sharing a directory (e.g. ``"emergency"``).
        tier: Which fallback tier this store plays.
    """

    def __init__(
        self,
        root: Path | str,
        namespace: str = "",
        tier: StoreTier = StoreTier.LOCAL,
    ) -> None:
        self.root = Path(root).expanduser()
        self.namespace = namespace
        self.tier = tier
        self._locks: dict[Path, asyncio.Lock] = {}

    def path_for(self, collection: str, workspace_id: str) -> Path:
        """File backing one collection of one workspace."""
        prefix = f"{self.namespace}_" if self.namespace else ""
        safe_workspace = _UNSAFE_CHARS.sub("_", workspace_id)
        return self.root / f"{prefix}{collection}_{safe_workspace}.json"

    def _lock(self, path: Path) -> asyncio.Lock:
        lock = self._locks.get(path)
        if lock is None:
            lock = self._locks[path] = asyncio.Lock()
        return lock

    def _check_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        if not os.access(self.root, os.W_OK):
            raise StoreUnavailableError(f"Local store directory not writable: {self.root}")

    @staticmethod
    def _load(path: Path) -> dict[str, Document]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt local store file {path.name}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Corrupt local store file {path.name}: expected an object")
        return data

    @staticmethod
    def _dump(path: Path, documents: dict[str, Document]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f"{path.name}.tmp")
        tmp.write_text(json.dumps(documents, default=str), encoding="utf-8")
        os.replace(tmp, path)

    async def initialize(self) -> None:
        await asyncio.to_thread(self._check_root)

    async def probe(self) -> None:
        try:
            await asyncio.to_thread(self._check_root)
        except StoreUnavailableError:
            raise
        except OSError as e:
            raise StoreUnavailableError(f"Local store unavailable: {e}") from e

    async def get(self, collection: str, workspace_id: str, key: str) -> Document | None:
        path = self.path_for(collection, workspace_id)
        async with self._lock(path):
            documents = await asyncio.to_thread(self._load, path)
        return documents.get(key)

    async def read(
        self, collection: str, workspace_id: str, limit: int | None = None
    ) -> list[Document]:
        path = self.path_for(collection, workspace_id)
        async with self._lock(path):
            documents = await asyncio.to_thread(self._load, path)
        values = list(documents.values())
        return values[:limit] if limit else values

    async def write(self, collection: str, workspace_id: str, key: str, document: Document) -> None:
        path = self.path_for(collection, workspace_id)
        async with self._lock(path):
            documents = await asyncio.to_thread(self._load, path)
            documents[key] = document
            await asyncio.to_thread(self._dump, path, documents)

    async def delete(self, collection: str, workspace_id: str, key: str) -> bool:
        path = self.path_for(collection, workspace_id)
        async with self._lock(path):
            documents = await asyncio.to_thread(self._load, path)
            if documents.pop(key, None) is None:
                return False
            await asyncio.to_thread(self._dump, path, documents)
        return True

    async def prune(self, collection: str, workspace_id: str, keep: int, order_by: str) -> int:
        path = self.path_for(collection, workspace_id)
        async with self._lock(path):
            documents = await asyncio.to_thread(self._load, path)
            if len(documents) <= keep:
                return 0
            ordered = sorted(
                documents.items(),
                key=lambda item: timestamp_key(item[1], order_by),
                reverse=True,
            )
            await asyncio.to_thread(self._dump, path, dict(ordered[:keep]))
        removed = len(ordered) - keep
        logger.debug("Pruned %d %s documents for %s", removed, collection, workspace_id)
        return removed
