"""Webhook models for outbound event notifications.

Provides subscriber registration, the event envelope, delivery log entries
and retry queue jobs. Everything here round-trips through
``model_dump(mode="json")`` so any store tier can hold it as a plain document.
"""

from datetime import datetime, timedelta
from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .base import generate_id, unix_millis, utc_now

# Event kinds raised by the workspace application
KNOWN_EVENT_TYPES: tuple[str, ...] = (
    "page.created",
    "page.updated",
    "page.deleted",
    "block.created",
    "block.updated",
    "block.deleted",
    "webhook.test",
)

# Synthetic event that targets exactly one subscriber (named in the payload)
TEST_EVENT_TYPE = "webhook.test"

DeliveryStatus = Literal["success", "retrying", "failed"]

# Opaque JSON-like event payload; see WebhookEvent for the minimal envelope
Payload = dict[str, Any]


class WebhookConfig(BaseModel):
    """A registered subscriber endpoint.

    Attributes:
        id: Unique identifier for this webhook.
        workspace_id: Workspace that owns this webhook.
        name: Human-readable label shown in settings.
        url: http(s) endpoint that receives POSTed events.
        secret: Shared HMAC secret. Never sent to the subscriber.
        events: Event types this webhook subscribes to.
        enabled: Disabled webhooks receive nothing, retries included.
        created_at: When the webhook was registered.
        updated_at: When the webhook was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("wh"))
    workspace_id: str = Field(min_length=1, description="Owning workspace")
    name: str = Field(default="", description="Human-readable label")
    url: str = Field(description="http(s) endpoint to receive events")
    secret: str = Field(min_length=1, description="Shared secret for HMAC-SHA256 signatures")
    events: list[str] = Field(default_factory=list, description="Subscribed event types")
    enabled: bool = Field(default=True, description="Whether webhook is active")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError("url must be an absolute http(s) URL")
        return value

    @field_validator("events")
    @classmethod
    def _dedupe_events(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(e for e in value if e))

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this webhook is enabled and subscribed to ``event_type``."""
        return self.enabled and event_type in self.events

    def public_view(self) -> dict[str, Any]:
        """Serialized form without the secret."""
        return self.model_dump(mode="json", exclude={"secret"})


class WebhookEvent(BaseModel):
    """Envelope for an event raised by a workspace collaborator.

    Serialized with camelCase keys, which is what subscribers receive::

        {"type": "page.created", "workspaceId": "ws_1",
         "timestamp": 1718000000000, "data": {"id": "p1"}}
    """

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    type: str = Field(min_length=1, description="Event type")
    workspace_id: str = Field(description="Workspace the event happened in")
    page_id: str | None = None
    block_id: str | None = None
    timestamp: int = Field(default_factory=unix_millis, description="Unix millis")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific data")

    @classmethod
    def for_test(cls, workspace_id: str, webhook_id: str) -> "WebhookEvent":
        """Create the synthetic event used by "send test event"."""
        return cls(
            type=TEST_EVENT_TYPE,
            workspace_id=workspace_id,
            data={"webhookId": webhook_id, "message": "This is a test webhook event"},
        )

    def to_payload(self) -> Payload:
        """Convert to the JSON-like blob that is signed and delivered."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DeliveryResult(BaseModel):
    """Outcome of exactly one HTTP delivery attempt."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    status_code: int | None = None
    error: str | None = None
    duration_ms: int = Field(default=0, ge=0)


class DeliveryLogEntry(BaseModel):
    """Append-only record of one delivery attempt.

    Attributes:
        id: Unique identifier for this entry.
        webhook_id: Subscriber the attempt targeted.
        workspace_id: Owning workspace.
        event_type: Event being delivered.
        status: success, retrying (a retry is queued) or failed (gave up).
        attempt: 1-indexed attempt number for this event and subscriber.
        response_status: HTTP status, if a response was received.
        error_message: Failure description, if any.
        duration_ms: Wall-clock duration of the attempt.
        timestamp: When the attempt finished.
        payload: The payload that was sent.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("log"))
    webhook_id: str
    workspace_id: str
    event_type: str
    status: DeliveryStatus
    attempt: int = Field(ge=1)
    response_status: int | None = None
    error_message: str | None = None
    duration_ms: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=utc_now)
    payload: Payload | None = None

    @classmethod
    def from_result(
        cls,
        webhook_id: str,
        workspace_id: str,
        event_type: str,
        payload: Payload,
        attempt: int,
        result: DeliveryResult,
        status: DeliveryStatus,
    ) -> "DeliveryLogEntry":
        """Build the log entry for a finished attempt."""
        return cls(
            webhook_id=webhook_id,
            workspace_id=workspace_id,
            event_type=event_type,
            status=status,
            attempt=attempt,
            response_status=result.status_code,
            error_message=result.error,
            duration_ms=result.duration_ms,
            payload=payload,
        )


class RetryJob(BaseModel):
    """Durable record of a pending re-attempt.

    ``attempt`` counts failed attempts so far; processing the job performs
    attempt ``attempt + 1``.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("job"))
    webhook_id: str
    workspace_id: str
    event_type: str
    payload: Payload = Field(default_factory=dict)
    attempt: int = Field(ge=1)
    next_run_at: datetime
    last_error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def schedule(
        cls,
        webhook_id: str,
        workspace_id: str,
        event_type: str,
        payload: Payload,
        attempt: int,
        delay: timedelta,
        last_error: str | None = None,
        now: datetime | None = None,
    ) -> "RetryJob":
        """Create a job eligible to run ``delay`` after ``now``."""
        now = now or utc_now()
        return cls(
            webhook_id=webhook_id,
            workspace_id=workspace_id,
            event_type=event_type,
            payload=payload,
            attempt=attempt,
            next_run_at=now + delay,
            last_error=last_error,
            created_at=now,
            updated_at=now,
        )

    def is_due(self, now: datetime | None = None) -> bool:
        """Whether the job's eligibility time has passed."""
        return self.next_run_at <= (now or utc_now())


__all__ = [
    "KNOWN_EVENT_TYPES",
    "TEST_EVENT_TYPE",
    "DeliveryLogEntry",
    "DeliveryResult",
    "DeliveryStatus",
    "Payload",
    "RetryJob",
    "WebhookConfig",
    "WebhookEvent",
]
