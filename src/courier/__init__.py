"""Courier: signed webhook delivery with durable retries.

Notifies externally registered HTTP endpoints when workspace events occur,
signs every payload with a per-subscriber secret, and retries failed
deliveries from a persistent queue with exponential backoff.

Quick Start:
    from courier.service import WebhookService

    async with WebhookService.create() as courier:
        await courier.create_webhook(
            "ws_1",
            url="https://example.com/hooks/courier",
            events=["page.created", "page.updated"],
        )
        result = await courier.trigger("ws_1", "page.created", {"pageId": "p_1"})

        # Re-attempt failed deliveries in the background
        courier.start_worker("ws_1")

Delivery is at-least-once: the same event may reach a subscriber more than
once, so subscribers must de-duplicate.
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    CourierError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    StoreUnavailableError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    logger,
    unbind_context,
    workspace_context,
)

# Models
from .models import (
    DeliveryLogEntry,
    DeliveryResult,
    Result,
    RetryJob,
    StoreTier,
    WebhookConfig,
    WebhookEvent,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "CourierError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "StoreUnavailableError",
    "PermissionDeniedError",
    "ConfigurationError",
    # Logging
    "configure_logging",
    "get_logger",
    "logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    "workspace_context",
    # Models
    "Result",
    "StoreTier",
    "WebhookConfig",
    "WebhookEvent",
    "DeliveryResult",
    "DeliveryLogEntry",
    "RetryJob",
]
