"""Test doubles shared across test modules."""

from __future__ import annotations

from courier.models import StoreTier
from courier.storage import DocumentStore


class StubRemote(DocumentStore):
    """Remote tier whose probe or operations can be made to fail."""

    tier = StoreTier.REMOTE

    def __init__(self, probe_error: Exception | None = None, op_error: Exception | None = None):
        self.probe_error = probe_error
        self.op_error = op_error
        self.documents: dict[str, dict] = {}
        self.calls: list[str] = []

    async def probe(self) -> None:
        self.calls.append("probe")
        if self.probe_error is not None:
            raise self.probe_error

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.op_error is not None:
            raise self.op_error

    async def get(self, collection, workspace_id, key):
        self._check("get")
        return self.documents.get(key)

    async def read(self, collection, workspace_id, limit=None):
        self._check("read")
        return list(self.documents.values())

    async def write(self, collection, workspace_id, key, document):
        self._check("write")
        self.documents[key] = document

    async def delete(self, collection, workspace_id, key):
        self._check("delete")
        return self.documents.pop(key, None) is not None
