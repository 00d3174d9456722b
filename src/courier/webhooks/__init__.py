"""Webhook delivery and retry.

Example:
    ```python
    from courier.webhooks import EventDispatcher, RetryWorker

    result = await dispatcher.trigger("ws_1", "page.created", payload)
    for outcome in result.unwrap():
        print(outcome.webhook_id, outcome.status)
    ```
"""

from .delivery import DeliveryEngine, build_headers, serialize_payload
from .dispatcher import DeliveryOutcome, EventDispatcher, select_subscribers
from .log import DeliveryLog
from .registry import SubscriberRegistry
from .retry import BackoffPolicy, RetryQueue
from .signing import generate_secret, sign, signature_header, verify_signature
from .worker import RetryWorker

__all__ = [
    # Delivery
    "DeliveryEngine",
    "build_headers",
    "serialize_payload",
    # Dispatch
    "DeliveryOutcome",
    "EventDispatcher",
    "select_subscribers",
    # Persistence
    "DeliveryLog",
    "SubscriberRegistry",
    # Retry
    "BackoffPolicy",
    "RetryQueue",
    "RetryWorker",
    # Signing
    "generate_secret",
    "sign",
    "signature_header",
    "verify_signature",
]
