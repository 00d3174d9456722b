"""Base helpers shared by Courier models."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("wh") -> "wh_a1b2c3d4e5f6"
        generate_id("job") -> "job_a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid4().hex[:12]}"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def unix_millis(moment: datetime | None = None) -> int:
    """Milliseconds since the epoch for ``moment`` (default: now)."""
    moment = moment or utc_now()
    return int(moment.timestamp() * 1000)
