"""Core functionality for Buildcart deployments."""

from buildcart.core.events import Event, EventBus, get_event_bus
from buildcart.core.exceptions import (
    AuthorizationError,
    BuildcartError,
    ConflictError,
    NotFoundError,
    RenderError,
    ValidationError,
    WriteError,
)
from buildcart.core.repository import (
    DeploymentRepository,
    InMemoryDeploymentRepository,
    InMemoryStoreRepository,
    StoreRepository,
)

__all__ = [
    "Event",
    "EventBus",
    "get_event_bus",
    "AuthorizationError",
    "BuildcartError",
    "ConflictError",
    "NotFoundError",
    "RenderError",
    "ValidationError",
    "WriteError",
    "DeploymentRepository",
    "InMemoryDeploymentRepository",
    "InMemoryStoreRepository",
    "StoreRepository",
]
