"""Dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from buildcart.core.events import EventBus, get_event_bus
from buildcart.core.orchestrator import DeploymentOrchestrator, get_orchestrator
from buildcart.models.identity import Identity, Role


async def get_identity(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> Identity:
    """Build the caller identity from headers set by the auth gateway."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    try:
        role = Role(x_user_role.lower()) if x_user_role else Role.USER
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role: {x_user_role}",
        ) from None

    return Identity(user_id=x_user_id, role=role)


async def get_deployment_orchestrator() -> DeploymentOrchestrator:
    """Get the deployment orchestrator."""
    return get_orchestrator()


async def get_events() -> EventBus:
    """Get the event bus."""
    return get_event_bus()


# Type aliases for cleaner signatures
IdentityDep = Annotated[Identity, Depends(get_identity)]
OrchestratorDep = Annotated[DeploymentOrchestrator, Depends(get_deployment_orchestrator)]
EventsDep = Annotated[EventBus, Depends(get_events)]
