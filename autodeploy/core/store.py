"""Deployment record storage.

The orchestration core talks to persistence only through
``DeploymentStore``. ``InMemoryDeploymentStore`` is the default backend;
``SQLiteDeploymentStore`` (see ``autodeploy.core.sqlite_store``) is used
when ``DATABASE_PATH`` is configured.
"""

from datetime import datetime
from functools import lru_cache
from typing import Protocol

from autodeploy.config import settings
from autodeploy.core.exceptions import AutodeployError, DeploymentNotFoundError
from autodeploy.models.deployment import (
    Deployment,
    DeploymentCreate,
    DeploymentLogEntry,
    DeploymentPhase,
    DeploymentStatus,
    LogLevel,
)
from autodeploy.models.project import Project, ProjectCreate, ProjectStats
from autodeploy.utils.logging import get_logger

logger = get_logger(__name__)


class DeploymentStore(Protocol):
    """Narrow CRUD interface over projects, deployments and their logs."""

    async def upsert_project(self, data: ProjectCreate) -> Project: ...

    async def get_project(self, name: str) -> Project | None: ...

    async def get_project_by_repo(self, repository: str) -> Project | None: ...

    async def get_all_projects(self) -> list[Project]: ...

    async def deactivate_project(self, name: str) -> bool: ...

    async def create_deployment(self, project_id: int, meta: DeploymentCreate) -> int: ...

    async def update_deployment_status(
        self,
        deployment_id: int,
        status: DeploymentStatus,
        phase: DeploymentPhase | None = None,
        error: str | None = None,
    ) -> None: ...

    async def add_deployment_log(
        self, deployment_id: int, phase: str, level: LogLevel, message: str
    ) -> None: ...

    async def get_deployment(self, deployment_id: int) -> Deployment | None: ...

    async def list_deployments(
        self, project_id: int | None = None, limit: int = 20, offset: int = 0
    ) -> list[Deployment]: ...

    async def get_deployment_logs(self, deployment_id: int) -> list[DeploymentLogEntry]: ...

    async def get_project_stats(self, project: Project) -> ProjectStats: ...


def apply_status(
    deployment: Deployment,
    status: DeploymentStatus,
    phase: DeploymentPhase | None = None,
    error: str | None = None,
) -> Deployment:
    """Apply a status transition, fixing ``completed_at`` on the first terminal write."""
    if deployment.status.is_terminal:
        logger.warning(
            "store.terminal_status_ignored",
            deployment_id=deployment.id,
            current=deployment.status.value,
            requested=status.value,
        )
        return deployment

    deployment.status = status
    if phase is not None:
        deployment.phase = phase
    if error:
        deployment.error_message = error
    if status.is_terminal:
        deployment.completed_at = datetime.utcnow()
        deployment.duration_ms = int(
            (deployment.completed_at - deployment.started_at).total_seconds() * 1000
        )
    return deployment


def compute_stats(project: Project, deployments: list[Deployment]) -> ProjectStats:
    """Aggregate deployment history for a project."""
    durations = [d.duration_ms for d in deployments if d.duration_ms is not None]
    return ProjectStats(
        project=project.name,
        total_deployments=len(deployments),
        successful_deployments=sum(
            1 for d in deployments if d.status == DeploymentStatus.SUCCESS
        ),
        failed_deployments=sum(
            1 for d in deployments if d.status == DeploymentStatus.FAILED
        ),
        avg_duration_ms=sum(durations) / len(durations) if durations else None,
        last_deployment=max((d.started_at for d in deployments), default=None),
    )


class InMemoryDeploymentStore:
    """Keeps projects and deployments in process memory.

    Note: Records are lost on restart; configure DATABASE_PATH to persist them.
    """

    def __init__(self):
        self._projects: dict[int, Project] = {}
        self._deployments: dict[int, Deployment] = {}
        self._logs: dict[int, list[DeploymentLogEntry]] = {}
        self._next_project_id = 1
        self._next_deployment_id = 1

    async def upsert_project(self, data: ProjectCreate) -> Project:
        """Create or update a project, keyed by name."""
        for other in self._projects.values():
            if other.active and other.repository == data.repository and other.name != data.name:
                raise AutodeployError(
                    f"Repository {data.repository} already registered by {other.name}",
                    {"repository": data.repository, "project": other.name},
                )

        existing = await self.get_project(data.name)
        if existing:
            project = Project(
                **data.model_dump(),
                id=existing.id,
                created_at=existing.created_at,
            )
        else:
            project = Project(**data.model_dump(), id=self._next_project_id)
            self._next_project_id += 1

        self._projects[project.id] = project
        logger.info("store.project_saved", project=project.name, repository=project.repository)
        return project

    async def get_project(self, name: str) -> Project | None:
        """Get an active project by name."""
        for project in self._projects.values():
            if project.name == name and project.active:
                return project
        return None

    async def get_project_by_repo(self, repository: str) -> Project | None:
        """Get the active project registered for a repository."""
        for project in self._projects.values():
            if project.repository == repository and project.active:
                return project
        return None

    async def get_all_projects(self) -> list[Project]:
        """List active projects ordered by name."""
        projects = [p for p in self._projects.values() if p.active]
        return sorted(projects, key=lambda p: p.name)

    async def deactivate_project(self, name: str) -> bool:
        """Soft-delete a project."""
        project = await self.get_project(name)
        if not project:
            return False
        project.active = False
        project.updated_at = datetime.utcnow()
        return True

    async def create_deployment(self, project_id: int, meta: DeploymentCreate) -> int:
        """Create a pending deployment and return its id."""
        deployment = Deployment(
            id=self._next_deployment_id,
            project_id=project_id,
            **meta.model_dump(),
        )
        self._next_deployment_id += 1
        self._deployments[deployment.id] = deployment
        self._logs[deployment.id] = []
        return deployment.id

    async def update_deployment_status(
        self,
        deployment_id: int,
        status: DeploymentStatus,
        phase: DeploymentPhase | None = None,
        error: str | None = None,
    ) -> None:
        deployment = self._deployments.get(deployment_id)
        if deployment is None:
            raise DeploymentNotFoundError(deployment_id)
        apply_status(deployment, status, phase, error)

    async def add_deployment_log(
        self, deployment_id: int, phase: str, level: LogLevel, message: str
    ) -> None:
        if deployment_id not in self._deployments:
            raise DeploymentNotFoundError(deployment_id)
        self._logs[deployment_id].append(
            DeploymentLogEntry(
                deployment_id=deployment_id,
                phase=phase,
                level=level,
                message=message,
            )
        )

    async def get_deployment(self, deployment_id: int) -> Deployment | None:
        return self._deployments.get(deployment_id)

    async def list_deployments(
        self, project_id: int | None = None, limit: int = 20, offset: int = 0
    ) -> list[Deployment]:
        """List deployments, newest first."""
        deployments = list(self._deployments.values())

        if project_id is not None:
            deployments = [d for d in deployments if d.project_id == project_id]

        deployments.sort(key=lambda d: (d.started_at, d.id), reverse=True)
        return deployments[offset : offset + limit]

    async def get_deployment_logs(self, deployment_id: int) -> list[DeploymentLogEntry]:
        return list(self._logs.get(deployment_id, []))

    async def get_project_stats(self, project: Project) -> ProjectStats:
        deployments = [
            d for d in self._deployments.values() if d.project_id == project.id
        ]
        return compute_stats(project, deployments)


@lru_cache(maxsize=1)
def get_store() -> DeploymentStore:
    """Get the configured store singleton."""
    if settings.database_path:
        from autodeploy.core.sqlite_store import SQLiteDeploymentStore

        return SQLiteDeploymentStore(settings.database_path)
    return InMemoryDeploymentStore()
