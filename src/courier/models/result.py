"""Explicit result values for operations that degrade instead of raising."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from courier.exceptions import CourierError

T = TypeVar("T")


class StoreTier(str, Enum):
    """Persistence backend that served an operation, in fallback order."""

    REMOTE = "remote"
    LOCAL = "local"
    EMERGENCY = "emergency"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Value-or-error returned by the registry and the store adapter.

    Attributes:
        data: The operation's value when it succeeded.
        error: The error when every tier failed or input was rejected.
        tier: Which store tier served the operation (None if none did).
    """

    data: T | None = None
    error: CourierError | None = None
    tier: StoreTier | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def degraded(self) -> bool:
        """Stored/served, but not by the primary (remote) tier."""
        return self.ok and self.tier is not None and self.tier is not StoreTier.REMOTE

    def unwrap(self) -> T:
        """Return ``data`` or raise ``error``."""
        if self.error is not None:
            raise self.error
        return self.data  # type: ignore[return-value]

    @classmethod
    def success(cls, data: T, tier: StoreTier | None = None) -> Result[T]:
        return cls(data=data, tier=tier)

    @classmethod
    def failure(cls, error: CourierError) -> Result[T]:
        return cls(error=error)
