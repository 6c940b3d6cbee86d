"""Dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends

from autodeploy.core.events import EventBus, get_event_bus
from autodeploy.core.exceptions import DeploymentNotFoundError, ProjectNotFoundError
from autodeploy.core.launcher import WebhookLauncher, get_launcher
from autodeploy.core.store import DeploymentStore, get_store
from autodeploy.models.deployment import Deployment
from autodeploy.models.project import Project


async def get_deployment_store() -> DeploymentStore:
    """Get the deployment store."""
    return get_store()


async def get_events() -> EventBus:
    """Get the event bus."""
    return get_event_bus()


async def get_webhook_launcher() -> WebhookLauncher:
    """Get the webhook launcher."""
    return get_launcher()


async def get_project_by_name(
    name: str,
    store: Annotated[DeploymentStore, Depends(get_deployment_store)],
) -> Project:
    """Get an active project by name or raise 404."""
    project = await store.get_project(name)
    if not project:
        raise ProjectNotFoundError(name)
    return project


async def get_deployment_by_id(
    deployment_id: int,
    store: Annotated[DeploymentStore, Depends(get_deployment_store)],
) -> Deployment:
    """Get a deployment by ID or raise 404."""
    deployment = await store.get_deployment(deployment_id)
    if not deployment:
        raise DeploymentNotFoundError(deployment_id)
    return deployment


# Type aliases for cleaner signatures
StoreDep = Annotated[DeploymentStore, Depends(get_deployment_store)]
EventsDep = Annotated[EventBus, Depends(get_events)]
LauncherDep = Annotated[WebhookLauncher, Depends(get_webhook_launcher)]
ProjectDep = Annotated[Project, Depends(get_project_by_name)]
DeploymentDep = Annotated[Deployment, Depends(get_deployment_by_id)]
