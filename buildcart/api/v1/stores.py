"""Store-scoped deployment endpoints."""

import asyncio
import json
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from sse_starlette.sse import EventSourceResponse

from buildcart.api.deps import EventsDep, IdentityDep, OrchestratorDep
from buildcart.api.responses import ApiResponse, envelope
from buildcart.core.events import Event
from buildcart.core.exceptions import ValidationError
from buildcart.models.deployment import (
    DateRange,
    DeploymentEnvironment,
    DeploymentStatus,
)

router = APIRouter()

# Event types after which a deployment stream closes
TERMINAL_EVENTS = ("deployment_completed", "deployment_failed")


class DeployRequest(BaseModel):
    """Request to deploy a store."""

    environment: DeploymentEnvironment = DeploymentEnvironment.PRODUCTION
    custom_domain: str | None = None
    ssl_enabled: bool = True


class RollbackRequest(BaseModel):
    """Request to roll a store back to a previous version."""

    version: str = Field(..., min_length=1)


class DomainRequest(BaseModel):
    """Request carrying a domain name."""

    domain: str = Field(..., min_length=1, max_length=253)


@router.post(
    "/{store_id}/deploy",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Deploy a store",
)
async def deploy_store(
    store_id: str,
    data: DeployRequest,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
) -> ApiResponse:
    """Render and publish a new version of the store."""
    result = await orchestrator.deploy(
        identity,
        store_id,
        environment=data.environment,
        custom_domain=data.custom_domain,
        ssl_enabled=data.ssl_enabled,
    )

    if result.deployment.status == DeploymentStatus.SUCCESS:
        message = "Store deployed successfully"
    else:
        message = "Deployment failed, see build logs for details"
    return envelope(message, result)


@router.get(
    "/{store_id}/deployments",
    response_model=ApiResponse,
    summary="List store deployments",
)
async def list_store_deployments(
    store_id: str,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    status_filter: Annotated[DeploymentStatus | None, Query(alias="status")] = None,
) -> ApiResponse:
    """List deployments newest first."""
    result = await orchestrator.get_store_deployments(
        identity, store_id, page=page, limit=limit, status=status_filter
    )
    return envelope("Deployments retrieved successfully", result)


@router.post(
    "/{store_id}/rollback",
    response_model=ApiResponse,
    summary="Roll back to a previous version",
)
async def rollback_store(
    store_id: str,
    data: RollbackRequest,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
) -> ApiResponse:
    """Point the store at a previously successful build."""
    deployment = await orchestrator.rollback_deployment(identity, store_id, data.version)
    return envelope(f"Rolled back to version {deployment.version}", deployment)


@router.post(
    "/{store_id}/domain",
    response_model=ApiResponse,
    summary="Set up a custom domain",
)
async def setup_domain(
    store_id: str,
    data: DomainRequest,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
) -> ApiResponse:
    """Bind a custom domain to the store."""
    binding = await orchestrator.setup_custom_domain(identity, store_id, data.domain)
    return envelope("Custom domain configured successfully", binding)


@router.post(
    "/{store_id}/ssl",
    response_model=ApiResponse,
    summary="Enable SSL for a custom domain",
)
async def enable_ssl(
    store_id: str,
    data: DomainRequest,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
) -> ApiResponse:
    """Request a certificate for one of the store's domains."""
    ssl = await orchestrator.enable_ssl(identity, data.domain, store_id=store_id)
    return envelope("SSL enabled successfully", ssl)


@router.get(
    "/{store_id}/deployment-analytics",
    response_model=ApiResponse,
    summary="Deployment analytics",
)
async def deployment_analytics(
    store_id: str,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
    start_date: Annotated[datetime | None, Query(alias="startDate")] = None,
    end_date: Annotated[datetime | None, Query(alias="endDate")] = None,
) -> ApiResponse:
    """Success rate, build times and recent deployments."""
    try:
        date_range = DateRange(start=start_date, end=end_date)
    except PydanticValidationError:
        raise ValidationError("startDate must not be after endDate") from None

    analytics = await orchestrator.get_deployment_analytics(identity, store_id, date_range)
    return envelope("Deployment analytics retrieved successfully", analytics)


@router.get(
    "/{store_id}/deployment-config",
    response_model=ApiResponse,
    summary="Deployment configuration",
)
async def deployment_config(
    store_id: str,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
) -> ApiResponse:
    """Store summary, latest deployment and effective public URL."""
    config = await orchestrator.get_deployment_config(identity, store_id)
    return envelope("Deployment configuration retrieved successfully", config)


@router.get(
    "/{store_id}/deployments/stream",
    summary="Stream deployment events (SSE)",
)
async def stream_deployment_events(
    store_id: str,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
    events: EventsDep,
) -> EventSourceResponse:
    """Stream deployment events of a store until the next deployment finishes."""
    store = await orchestrator.authorize_store(identity, store_id)

    async def event_generator():
        queue = events.subscribe(store.id)

        try:
            yield {
                "event": "connected",
                "data": json.dumps(
                    {"store_id": store.id, "is_deployed": store.is_deployed}
                ),
            }

            while True:
                try:
                    event: Event = await asyncio.wait_for(queue.get(), timeout=30.0)
                    yield {"event": event.event_type, "data": event.payload()}

                    if event.event_type in TERMINAL_EVENTS:
                        break

                except asyncio.TimeoutError:
                    yield {"event": "keepalive", "data": "{}"}

        finally:
            events.unsubscribe(store.id, queue)

    return EventSourceResponse(event_generator())
