"""Deployment record endpoints."""

from uuid import UUID

from fastapi import APIRouter

from buildcart.api.deps import IdentityDep, OrchestratorDep
from buildcart.api.responses import ApiResponse, envelope

router = APIRouter()


@router.get(
    "/{deployment_id}",
    response_model=ApiResponse,
    summary="Get deployment status",
)
async def get_deployment_status(
    deployment_id: UUID,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
) -> ApiResponse:
    deployment = await orchestrator.get_deployment_status(identity, deployment_id)
    return envelope("Deployment retrieved successfully", deployment)


@router.get(
    "/{deployment_id}/logs",
    response_model=ApiResponse,
    summary="Get deployment build logs",
)
async def get_deployment_logs(
    deployment_id: UUID,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
) -> ApiResponse:
    logs = await orchestrator.get_deployment_logs(identity, deployment_id)
    return envelope("Deployment logs retrieved successfully", logs)


@router.delete(
    "/{deployment_id}",
    response_model=ApiResponse,
    summary="Delete a deployment record",
)
async def delete_deployment(
    deployment_id: UUID,
    identity: IdentityDep,
    orchestrator: OrchestratorDep,
) -> ApiResponse:
    """Delete the record; the build stays on storage."""
    await orchestrator.delete_deployment(identity, deployment_id)
    return envelope("Deployment deleted successfully")
