"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from courier.models import DeliveryLogEntry, RetryJob, WebhookConfig
from courier.webhooks import DeliveryOutcome


class CreateWebhookRequest(BaseModel):
    """Request body for registering a webhook.

    Attributes:
        url: http(s) endpoint that receives events.
        events: Event types to subscribe to.
        name: Human-readable label.
        secret: Optional shared secret. Generated when omitted.
        enabled: Whether the webhook starts active.
    """

    model_config = ConfigDict(extra="forbid")

    url: str = Field(min_length=1, description="Endpoint URL")
    events: list[str] = Field(min_length=1, description="Subscribed event types")
    name: str = Field(default="", description="Human-readable label")
    secret: str | None = Field(default=None, min_length=1, description="Shared secret")
    enabled: bool = Field(default=True, description="Whether webhook is active")


class UpdateWebhookRequest(BaseModel):
    """Partial update of a webhook. Omitted fields are left unchanged."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    url: str | None = None
    events: list[str] | None = None
    secret: str | None = Field(default=None, min_length=1)
    enabled: bool | None = None


class WebhookResponse(BaseModel):
    """A registered webhook, without its secret."""

    model_config = ConfigDict(extra="forbid")

    id: str
    workspace_id: str
    name: str
    url: str
    events: list[str]
    enabled: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_config(cls, webhook: WebhookConfig) -> WebhookResponse:
        return cls.model_validate(webhook.public_view())


class WebhookCreatedResponse(WebhookResponse):
    """Response to a create: the only place the secret is ever returned."""

    secret: str

    @classmethod
    def from_config(cls, webhook: WebhookConfig) -> WebhookCreatedResponse:
        return cls.model_validate(webhook.model_dump(mode="json"))


class WebhookListResponse(BaseModel):
    """Webhooks of a workspace, newest first."""

    model_config = ConfigDict(extra="forbid")

    webhooks: list[WebhookResponse]
    count: int
    degraded: bool = Field(default=False, description="Served by a fallback store tier")


class DeleteWebhookResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    deleted: bool


class TriggerEventRequest(BaseModel):
    """An event raised by a workspace collaborator.

    Attributes:
        type: Event type (e.g. "page.created").
        page_id: Page the event concerns, if any.
        block_id: Block the event concerns, if any.
        data: Event-specific data.
    """

    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1, description="Event type")
    page_id: str | None = None
    block_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class DispatchResponse(BaseModel):
    """Per-subscriber outcomes of one dispatch.

    Attributes:
        event_type: The dispatched event type.
        delivered: Number of subscribers that accepted the event.
        outcomes: One entry per matching subscriber.
    """

    model_config = ConfigDict(extra="forbid")

    event_type: str
    delivered: int
    outcomes: list[DeliveryOutcome]


class DeliveryLogResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    entries: list[DeliveryLogEntry]
    count: int


class QueueResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    jobs: list[RetryJob]
    count: int


class WorkerResponse(BaseModel):
    """State of a workspace's retry worker."""

    model_config = ConfigDict(extra="forbid")

    workspace_id: str
    running: bool
    poll_interval_seconds: float | None = None


class HealthResponse(BaseModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status (healthy, unhealthy).
        version: API version.
        remote_enabled: Whether a remote store tier is configured.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    remote_enabled: bool


__all__ = [
    "CreateWebhookRequest",
    "DeleteWebhookResponse",
    "DeliveryLogResponse",
    "DispatchResponse",
    "HealthResponse",
    "QueueResponse",
    "TriggerEventRequest",
    "UpdateWebhookRequest",
    "WebhookCreatedResponse",
    "WebhookListResponse",
    "WebhookResponse",
    "WorkerResponse",
]
