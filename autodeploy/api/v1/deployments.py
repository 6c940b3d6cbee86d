"""Deployment history, live status and event streaming endpoints."""

import asyncio
import json
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from autodeploy.api.deps import DeploymentDep, EventsDep, LauncherDep, StoreDep
from autodeploy.core.events import TERMINAL_EVENTS, Event
from autodeploy.core.exceptions import ProjectNotFoundError
from autodeploy.models.deployment import (
    ActiveDeployment,
    Deployment,
    DeploymentListResponse,
    DeploymentLogEntry,
)

router = APIRouter()

KEEPALIVE_SECONDS = 30.0


class CancelResponse(BaseModel):
    """Result of a cancellation request."""

    project: str
    cancelled: bool
    deployment_id: int | None = None


@router.get(
    "",
    response_model=DeploymentListResponse,
    summary="List deployments",
)
async def list_deployments(
    store: StoreDep,
    project: Annotated[str | None, Query(description="Filter by project name")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> DeploymentListResponse:
    """List deployments, newest first."""
    project_id = None
    if project is not None:
        found = await store.get_project(project)
        if not found:
            raise ProjectNotFoundError(project)
        project_id = found.id

    deployments = await store.list_deployments(project_id=project_id, limit=limit, offset=offset)
    return DeploymentListResponse(deployments=deployments, limit=limit, offset=offset)


@router.get(
    "/active",
    response_model=list[ActiveDeployment],
    summary="List in-flight deployments",
)
async def active_deployments(launcher: LauncherDep) -> list[ActiveDeployment]:
    return launcher.active_deployments()


@router.get(
    "/{deployment_id}",
    response_model=Deployment,
    summary="Get deployment details",
)
async def get_deployment(deployment: DeploymentDep) -> Deployment:
    return deployment


@router.get(
    "/{deployment_id}/logs",
    response_model=list[DeploymentLogEntry],
    summary="Get the deployment log",
)
async def get_deployment_logs(
    deployment: DeploymentDep, store: StoreDep
) -> list[DeploymentLogEntry]:
    return await store.get_deployment_logs(deployment.id)


@router.post(
    "/{project}/cancel",
    response_model=CancelResponse,
    summary="Cancel a project's in-flight deployment",
)
async def cancel_deployment(project: str, launcher: LauncherDep) -> CancelResponse:
    """Cancel the running deployment for a project, if any."""
    deployment_id = launcher.registry.get(project)
    cancelled = await launcher.cancel_deployment(project)
    if not cancelled:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No active deployment for project: {project}",
        )
    return CancelResponse(project=project, cancelled=True, deployment_id=deployment_id)


@router.get(
    "/{deployment_id}/stream",
    summary="Stream deployment events (SSE)",
)
async def stream_deployment_events(
    deployment: DeploymentDep,
    events: EventsDep,
) -> EventSourceResponse:
    """Stream lifecycle events for a deployment using Server-Sent Events."""
    queue = events.subscribe(deployment.id)

    async def event_generator():
        try:
            # Send initial status
            yield {
                "event": "connected",
                "data": json.dumps(
                    {"deployment_id": deployment.id, "status": deployment.status.value}
                ),
            }

            if deployment.status.is_terminal:
                return

            # Stream events until the deployment finishes or client disconnects
            while True:
                try:
                    event: Event = await asyncio.wait_for(
                        queue.get(), timeout=KEEPALIVE_SECONDS
                    )
                    yield {
                        "event": event.event_type,
                        "data": json.dumps(event.data, default=str),
                    }

                    if event.event_type in TERMINAL_EVENTS:
                        break

                except asyncio.TimeoutError:
                    yield {"event": "keepalive", "data": "{}"}

        finally:
            events.unsubscribe(deployment.id, queue)

    return EventSourceResponse(event_generator())
