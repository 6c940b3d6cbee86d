"""Health check endpoints."""

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from autodeploy import __version__
from autodeploy.api.deps import LauncherDep, StoreDep
from autodeploy.config import settings
from autodeploy.models.deployment import ActiveDeployment

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    environment: str
    timestamp: datetime
    projects: int
    active_deployments: list[ActiveDeployment]


@router.get("/health", response_model=HealthResponse)
async def health_check(store: StoreDep, launcher: LauncherDep) -> HealthResponse:
    """Check API health status."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.utcnow(),
        projects=len(await store.get_all_projects()),
        active_deployments=launcher.active_deployments(),
    )
