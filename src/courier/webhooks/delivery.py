"""Single-attempt webhook delivery.

The engine signs the payload, POSTs it once, measures wall-clock duration
and classifies the outcome. It never retries; retry policy lives in
``courier.webhooks.retry``.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

import httpx

from courier.config import settings
from courier.models import DeliveryResult, unix_millis

from .signing import sign, signature_header

if TYPE_CHECKING:
    from courier.models import Payload, WebhookConfig

logger = logging.getLogger(__name__)

EVENT_HEADER = "X-Webhook-Event"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
SIGNATURE_HEADER = "X-Webhook-Signature"
WEBHOOK_ID_HEADER = "X-Webhook-Id"


def serialize_payload(payload: Payload) -> str:
    """Compact JSON body, exactly as signed and sent."""
    return json.dumps(payload, separators=(",", ":"), default=str)


def build_headers(webhook: WebhookConfig, event_type: str, body: str, timestamp: int) -> dict[str, str]:
    """Transport headers for one signed delivery."""
    return {
        "Content-Type": "application/json",
        EVENT_HEADER: event_type,
        TIMESTAMP_HEADER: str(timestamp),
        SIGNATURE_HEADER: signature_header(sign(webhook.secret, timestamp, body)),
        WEBHOOK_ID_HEADER: webhook.id,
    }


class DeliveryEngine:
    """Performs exactly one signed POST per call.

    Example:
        ```python
        engine = DeliveryEngine(timeout_seconds=15.0)
        result = await engine.deliver(webhook, "page.created", payload)
        if not result.success:
            print(result.status_code, result.error)
        ```
    """

    def __init__(
        self,
        timeout_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            timeout_seconds: Per-request timeout. Defaults to
                settings.delivery_timeout_seconds.
            client: Shared HTTP client. When omitted a short-lived client is
                opened per delivery.
        """
        self._timeout = timeout_seconds or settings.delivery_timeout_seconds
        self._client = client

    async def _post(self, url: str, body: str, headers: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, content=body, headers=headers, timeout=self._timeout)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, content=body, headers=headers)

    async def deliver(
        self,
        webhook: WebhookConfig,
        event_type: str,
        payload: Payload,
    ) -> DeliveryResult:
        """Deliver ``payload`` to ``webhook`` once and classify the outcome.

        2xx is success; any other status is a failure with the status
        recorded; transport errors are failures with the message recorded.
        """
        start = time.perf_counter()

        def elapsed() -> int:
            return int((time.perf_counter() - start) * 1000)

        body = serialize_payload(payload)
        headers = build_headers(webhook, event_type, body, unix_millis())

        try:
            response = await self._post(webhook.url, body, headers)
        except httpx.TimeoutException:
            logger.warning("Webhook %s timed out after %.1fs", webhook.id, self._timeout)
            return DeliveryResult(success=False, error="Request timeout", duration_ms=elapsed())
        except httpx.HTTPError as e:
            logger.warning("Webhook %s transport error: %s", webhook.id, e)
            return DeliveryResult(success=False, error=str(e) or "Network error", duration_ms=elapsed())
        except Exception as e:
            logger.exception("Webhook %s delivery error", webhook.id)
            return DeliveryResult(success=False, error=f"Unexpected error: {e}", duration_ms=elapsed())

        duration_ms = elapsed()
        if 200 <= response.status_code < 300:
            logger.info(
                "Webhook delivered: %s to %s (status %d, %dms)",
                event_type,
                webhook.url,
                response.status_code,
                duration_ms,
            )
            return DeliveryResult(
                success=True, status_code=response.status_code, duration_ms=duration_ms
            )

        logger.warning(
            "Webhook rejected: %s to %s (status %d)",
            event_type,
            webhook.url,
            response.status_code,
        )
        return DeliveryResult(
            success=False,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}: {response.reason_phrase}",
            duration_ms=duration_ms,
        )
