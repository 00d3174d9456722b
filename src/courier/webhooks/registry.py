"""Subscriber registry: CRUD for webhook configurations.

Registry edits are user-initiated and can be retried interactively, so
every operation returns a ``Result`` carrying either data or an error
instead of raising.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from courier.exceptions import NotFoundError, ValidationError
from courier.models import Result, WebhookConfig, utc_now
from courier.storage import WEBHOOKS_COLLECTION, FallbackStore

from .signing import generate_secret

logger = logging.getLogger(__name__)

# Fields a patch may change; id, workspace and created_at are immutable
PATCHABLE_FIELDS = frozenset({"name", "url", "events", "secret", "enabled"})


def _validation_error(exc: PydanticValidationError) -> ValidationError:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "webhook"
    return ValidationError(field, first.get("msg", "invalid value"))


class SubscriberRegistry:
    """Webhook configurations of every workspace, persisted via a FallbackStore."""

    def __init__(self, store: FallbackStore) -> None:
        self._store = store

    async def list_webhooks(self, workspace_id: str) -> Result[list[WebhookConfig]]:
        """All webhooks of a workspace, newest first."""
        result = await self._store.read_all(WEBHOOKS_COLLECTION, workspace_id)
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]

        webhooks: list[WebhookConfig] = []
        for document in result.data or []:
            try:
                webhooks.append(WebhookConfig.model_validate(document))
            except PydanticValidationError:
                logger.warning("Skipping unreadable webhook record %s", document.get("id"))

        webhooks.sort(key=lambda w: w.created_at, reverse=True)
        return Result.success(webhooks, tier=result.tier)

    async def get_webhook(self, workspace_id: str, webhook_id: str) -> Result[WebhookConfig]:
        """Fetch one webhook; a missing webhook is a ``NotFoundError`` result."""
        result = await self._store.get_any(WEBHOOKS_COLLECTION, workspace_id, webhook_id)
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]
        if result.data is None:
            return Result.failure(NotFoundError("webhook", webhook_id))
        try:
            return Result.success(WebhookConfig.model_validate(result.data), tier=result.tier)
        except PydanticValidationError as e:
            return Result.failure(_validation_error(e))

    async def create_webhook(
        self,
        workspace_id: str,
        url: str,
        events: list[str],
        name: str = "",
        secret: str | None = None,
        enabled: bool = True,
    ) -> Result[WebhookConfig]:
        """Register a webhook. A random secret is generated if none is given.

        The returned config holds the secret; it is the only time callers
        see it without reading the store directly.
        """
        try:
            webhook = WebhookConfig(
                workspace_id=workspace_id,
                name=name,
                url=url,
                events=events,
                secret=secret or generate_secret(),
                enabled=enabled,
            )
        except PydanticValidationError as e:
            return Result.failure(_validation_error(e))

        written = await self._store.write(
            WEBHOOKS_COLLECTION, workspace_id, webhook.id, webhook.model_dump(mode="json")
        )
        if not written.ok:
            return Result.failure(written.error)  # type: ignore[arg-type]

        logger.info("Created webhook %s for workspace %s", webhook.id, workspace_id)
        return Result.success(webhook, tier=written.tier)

    async def update_webhook(
        self, workspace_id: str, webhook_id: str, /, **patch: Any
    ) -> Result[WebhookConfig]:
        """Apply a partial patch to a webhook and bump ``updated_at``."""
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            return Result.failure(
                ValidationError(sorted(unknown)[0], "field cannot be updated")
            )

        current = await self.get_webhook(workspace_id, webhook_id)
        if not current.ok:
            return current

        data = current.unwrap().model_dump()
        data.update({k: v for k, v in patch.items() if v is not None})
        data["updated_at"] = utc_now()
        try:
            webhook = WebhookConfig.model_validate(data)
        except PydanticValidationError as e:
            return Result.failure(_validation_error(e))

        written = await self._store.write(
            WEBHOOKS_COLLECTION, workspace_id, webhook.id, webhook.model_dump(mode="json")
        )
        if not written.ok:
            return Result.failure(written.error)  # type: ignore[arg-type]

        logger.info("Updated webhook %s (%s)", webhook_id, ", ".join(sorted(patch)))
        return Result.success(webhook, tier=written.tier)

    async def delete_webhook(self, workspace_id: str, webhook_id: str) -> Result[bool]:
        """Remove a webhook.

        Queued retries referencing it are left in place and discarded by the
        retry worker when it finds the webhook missing.
        """
        result = await self._store.delete_all(WEBHOOKS_COLLECTION, workspace_id, webhook_id)
        if not result.ok:
            return result
        if not result.data:
            return Result.failure(NotFoundError("webhook", webhook_id))

        logger.info("Deleted webhook %s from workspace %s", webhook_id, workspace_id)
        return result
