"""Custom exceptions for the deployment pipeline."""

from typing import Any


class BuildcartError(Exception):
    """Base exception for Buildcart."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(BuildcartError):
    """A store, deployment or domain target does not exist."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            f"{resource} not found",
            {"resource": resource.lower(), "id": identifier},
        )
        self.resource = resource
        self.identifier = identifier


class ValidationError(BuildcartError):
    """Malformed input to an operation."""

    pass


class ConflictError(BuildcartError):
    """Operation conflicts with existing state."""

    pass


class AuthorizationError(BuildcartError):
    """Caller is neither the store owner nor an administrator."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class RenderError(BuildcartError):
    """Store snapshot is structurally invalid and cannot be rendered."""

    def __init__(self, message: str, field: str | None = None):
        details = {}
        if field is not None:
            details["field"] = field
        super().__init__(f"Render failed: {message}", details)


class WriteError(BuildcartError):
    """Build output could not be written to storage."""

    def __init__(self, message: str, path: str | None = None):
        details = {}
        if path:
            details["path"] = path
        super().__init__(f"Build write failed: {message}", details)
