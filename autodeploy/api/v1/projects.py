"""Project registration endpoints."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from autodeploy.api.deps import ProjectDep, StoreDep
from autodeploy.core.exceptions import AutodeployError
from autodeploy.models.project import ProjectCreate, ProjectResponse, ProjectStats
from autodeploy.utils.logging import get_logger

router = APIRouter()
logger = get_logger(__name__)


class ProjectListResponse(BaseModel):
    """Response for listing projects."""

    projects: list[ProjectResponse]
    total: int


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register or update a project",
    description="Projects are keyed by name; posting an existing name replaces its configuration.",
)
async def register_project(data: ProjectCreate, store: StoreDep) -> ProjectResponse:
    """Register a project for webhook-driven deployment."""
    try:
        project = await store.upsert_project(data)
    except AutodeployError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=e.message,
        ) from e

    logger.info(
        "projects.registered",
        project=project.name,
        repository=project.repository,
    )
    return ProjectResponse.from_project(project)


@router.get(
    "",
    response_model=ProjectListResponse,
    summary="List registered projects",
)
async def list_projects(store: StoreDep) -> ProjectListResponse:
    projects = await store.get_all_projects()
    return ProjectListResponse(
        projects=[ProjectResponse.from_project(p) for p in projects],
        total=len(projects),
    )


@router.get(
    "/{name}",
    response_model=ProjectResponse,
    summary="Get project details",
)
async def get_project(project: ProjectDep) -> ProjectResponse:
    return ProjectResponse.from_project(project)


@router.get(
    "/{name}/stats",
    response_model=ProjectStats,
    summary="Get deployment statistics for a project",
)
async def get_project_stats(project: ProjectDep, store: StoreDep) -> ProjectStats:
    return await store.get_project_stats(project)


@router.delete(
    "/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Deactivate a project",
)
async def deactivate_project(project: ProjectDep, store: StoreDep) -> None:
    """Stop accepting webhooks for a project. Deployment history is kept."""
    await store.deactivate_project(project.name)
    logger.info("projects.deactivated", project=project.name)
