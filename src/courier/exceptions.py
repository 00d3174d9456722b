"""Courier exception hierarchy.

Registry and storage operations hand these back inside a ``Result``; the
API layer raises them via ``Result.unwrap()`` and maps them to HTTP status
codes. All inherit from CourierError.
"""

from __future__ import annotations


class CourierError(Exception):
    """Base exception for all Courier errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "courier_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def details(self) -> dict[str, object]:
        """Extra fields included in the API error body."""
        return {}

    def to_dict(self) -> dict[str, object]:
        """API error body: ``{"error": {"code", "message", ...details}}``."""
        return {"error": {"code": self.code, "message": self.message, **self.details()}}


class ValidationError(CourierError):
    """Invalid input provided.

    Attributes:
        field: The field that failed validation.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def details(self) -> dict[str, object]:
        return {"field": self.field}


class NotFoundError(CourierError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "webhook", "retry_job").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def details(self) -> dict[str, object]:
        return {"resource_type": self.resource_type, "resource_id": self.resource_id}


class StorageError(CourierError):
    """Storage operation failed on every available tier."""

    code: str = "storage_error"


class StoreUnavailableError(StorageError):
    """A store tier failed its availability probe."""

    code: str = "store_unavailable"


class PermissionDeniedError(StoreUnavailableError):
    """The remote store is reachable but refused access."""

    code: str = "permission_denied"


class ConfigurationError(CourierError):
    """Required configuration is missing or invalid."""

    code: str = "configuration_error"
