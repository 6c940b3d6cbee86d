"""Registry of in-flight deployments, one per project."""

import asyncio

from autodeploy.models.deployment import ActiveDeployment
from autodeploy.utils.logging import get_logger

logger = get_logger(__name__)


class ActiveDeploymentRegistry:
    """Maps project name to the id of its running deployment.

    This is the per-project concurrency guard: ``try_register`` is an atomic
    check-and-set, so at most one deployment per project is ever active.
    """

    def __init__(self):
        self._active: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def try_register(self, project: str, deployment_id: int) -> bool:
        """Register a deployment unless the project already has one."""
        async with self._lock:
            if project in self._active:
                return False
            self._active[project] = deployment_id

        logger.info("registry.registered", project=project, deployment_id=deployment_id)
        return True

    async def release(self, project: str) -> int | None:
        """Remove the project's entry, returning the released deployment id."""
        async with self._lock:
            deployment_id = self._active.pop(project, None)

        logger.info("registry.released", project=project, deployment_id=deployment_id)
        return deployment_id

    def get(self, project: str) -> int | None:
        return self._active.get(project)

    def is_active(self, project: str) -> bool:
        return project in self._active

    def snapshot(self) -> list[ActiveDeployment]:
        return [
            ActiveDeployment(project=project, deployment_id=deployment_id)
            for project, deployment_id in sorted(self._active.items())
        ]

    def __len__(self) -> int:
        return len(self._active)
