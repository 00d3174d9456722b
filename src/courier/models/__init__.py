"""Model types for Courier.

Webhook Types:
    - WebhookConfig: A registered subscriber endpoint
    - WebhookEvent: Event envelope raised by workspace collaborators
    - DeliveryResult: Outcome of one HTTP attempt
    - DeliveryLogEntry: Append-only record of an attempt
    - RetryJob: Durable pending re-attempt

Supporting Types:
    - Result / StoreTier: Explicit value-or-error with the serving store tier
"""

from .base import generate_id, unix_millis, utc_now
from .result import Result, StoreTier
from .webhook import (
    KNOWN_EVENT_TYPES,
    TEST_EVENT_TYPE,
    DeliveryLogEntry,
    DeliveryResult,
    DeliveryStatus,
    Payload,
    RetryJob,
    WebhookConfig,
    WebhookEvent,
)

__all__ = [
    # Helpers
    "generate_id",
    "unix_millis",
    "utc_now",
    # Results
    "Result",
    "StoreTier",
    # Webhook types
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
