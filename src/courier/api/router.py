"""FastAPI router for Courier API endpoints.

Service calls return ``Result`` values; ``unwrap()`` raises the carried
``CourierError``, which the app's exception handlers turn into 400/404/500
responses.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from courier import __version__
from courier.models import WebhookEvent
from courier.service import WebhookService

from .schemas import (
    CreateWebhookRequest,
    DeleteWebhookResponse,
    DeliveryLogResponse,
    DispatchResponse,
    HealthResponse,
    QueueResponse,
    TriggerEventRequest,
    UpdateWebhookRequest,
    WebhookCreatedResponse,
    WebhookListResponse,
    WebhookResponse,
    WorkerResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: WebhookService | None = None


def set_service(service: WebhookService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> WebhookService:
    """Dependency to get the WebhookService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[WebhookService, Depends(get_service)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health."""
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__, remote_enabled=False)
    return HealthResponse(
        status="healthy",
        version=__version__,
        remote_enabled=_service.settings.remote_enabled,
    )


# Registry


@router.get(
    "/workspaces/{workspace_id}/webhooks",
    response_model=WebhookListResponse,
    tags=["webhooks"],
)
async def list_webhooks(workspace_id: str, service: ServiceDep) -> WebhookListResponse:
    """List a workspace's webhooks, newest first. Secrets are never included."""
    result = await service.list_webhooks(workspace_id)
    webhooks = result.unwrap()
    return WebhookListResponse(
        webhooks=[WebhookResponse.from_config(w) for w in webhooks],
        count=len(webhooks),
        degraded=result.degraded,
    )


@router.post(
    "/workspaces/{workspace_id}/webhooks",
    response_model=WebhookCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_webhook(
    workspace_id: str,
    request: CreateWebhookRequest,
    service: ServiceDep,
) -> WebhookCreatedResponse:
    """Register a webhook.

    The response includes the signing secret. It is not returned by any
    other endpoint, so callers must store it now.
    """
    result = await service.create_webhook(
        workspace_id,
        url=request.url,
        events=request.events,
        name=request.name,
        secret=request.secret,
        enabled=request.enabled,
    )
    return WebhookCreatedResponse.from_config(result.unwrap())


@router.patch(
    "/workspaces/{workspace_id}/webhooks/{webhook_id}",
    response_model=WebhookResponse,
    tags=["webhooks"],
)
async def update_webhook(
    workspace_id: str,
    webhook_id: str,
    request: UpdateWebhookRequest,
    service: ServiceDep,
) -> WebhookResponse:
    """Partially update a webhook."""
    patch = request.model_dump(exclude_unset=True, exclude_none=True)
    result = await service.update_webhook(workspace_id, webhook_id, **patch)
    return WebhookResponse.from_config(result.unwrap())


@router.delete(
    "/workspaces/{workspace_id}/webhooks/{webhook_id}",
    response_model=DeleteWebhookResponse,
    tags=["webhooks"],
)
async def delete_webhook(
    workspace_id: str, webhook_id: str, service: ServiceDep
) -> DeleteWebhookResponse:
    """Delete a webhook. Queued retries for it are discarded by the worker."""
    result = await service.delete_webhook(workspace_id, webhook_id)
    return DeleteWebhookResponse(id=webhook_id, deleted=bool(result.unwrap()))


@router.post(
    "/workspaces/{workspace_id}/webhooks/{webhook_id}/test",
    response_model=DispatchResponse,
    tags=["webhooks"],
)
async def send_test_event(
    workspace_id: str, webhook_id: str, service: ServiceDep
) -> DispatchResponse:
    """Send a ``webhook.test`` event to one webhook."""
    result = await service.send_test_event(workspace_id, webhook_id)
    outcomes = result.unwrap()
    return DispatchResponse(
        event_type="webhook.test",
        delivered=sum(1 for o in outcomes if o.status == "success"),
        outcomes=outcomes,
    )


# Events


@router.post(
    "/workspaces/{workspace_id}/events",
    response_model=DispatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["events"],
)
async def trigger_event(
    workspace_id: str,
    request: TriggerEventRequest,
    service: ServiceDep,
) -> DispatchResponse:
    """Deliver an event to every enabled webhook subscribed to its type.

    Failed deliveries are queued for retry; the response reports the first
    attempt only.
    """
    event = WebhookEvent(
        type=request.type,
        workspace_id=workspace_id,
        page_id=request.page_id,
        block_id=request.block_id,
        data=request.data,
    )
    result = await service.trigger(workspace_id, event.type, event)
    outcomes = result.unwrap()
    return DispatchResponse(
        event_type=event.type,
        delivered=sum(1 for o in outcomes if o.status == "success"),
        outcomes=outcomes,
    )


# Delivery log and retry queue


@router.get(
    "/workspaces/{workspace_id}/deliveries",
    response_model=DeliveryLogResponse,
    tags=["deliveries"],
)
async def get_deliveries(
    workspace_id: str,
    service: ServiceDep,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> DeliveryLogResponse:
    """Most recent delivery attempts, newest first."""
    entries = await service.get_logs(workspace_id, limit=limit)
    return DeliveryLogResponse(entries=entries, count=len(entries))


@router.get(
    "/workspaces/{workspace_id}/queue",
    response_model=QueueResponse,
    tags=["deliveries"],
)
async def get_queue(workspace_id: str, service: ServiceDep) -> QueueResponse:
    """Pending retry jobs ordered by next run time."""
    jobs = await service.get_queue(workspace_id)
    return QueueResponse(jobs=jobs, count=len(jobs))


# Retry worker


@router.post(
    "/workspaces/{workspace_id}/worker",
    response_model=WorkerResponse,
    tags=["worker"],
)
async def start_worker(workspace_id: str, service: ServiceDep) -> WorkerResponse:
    """Start the workspace's retry worker. Starting a running worker is a no-op."""
    worker = service.start_worker(workspace_id)
    return WorkerResponse(
        workspace_id=workspace_id,
        running=worker.is_running,
        poll_interval_seconds=worker.poll_interval,
    )


@router.delete(
    "/workspaces/{workspace_id}/worker",
    response_model=WorkerResponse,
    tags=["worker"],
)
async def stop_worker(workspace_id: str, service: ServiceDep) -> WorkerResponse:
    """Stop the workspace's retry worker. An in-flight tick runs to completion."""
    await service.stop_worker(workspace_id)
    logger.info("Retry worker stop requested for %s", workspace_id)
    return WorkerResponse(workspace_id=workspace_id, running=False)
