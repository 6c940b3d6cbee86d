"""Base class for deployment pipeline phases."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from autodeploy.config import Settings, settings
from autodeploy.core.events import Notifier
from autodeploy.models.deployment import DeploymentPhase, PhaseResult
from autodeploy.models.project import Project
from autodeploy.services.health_monitor import HealthMonitor
from autodeploy.services.shell import ShellRunner
from autodeploy.utils.deployment_logger import DeploymentLogger
from autodeploy.utils.logging import get_logger


@dataclass
class PhaseContext:
    """Everything a phase needs to run for one deployment."""

    deployment_id: int
    project: Project
    logger: DeploymentLogger
    health: HealthMonitor
    shell: ShellRunner
    commit_hash: str | None = None
    notifier: Notifier | None = None
    settings: Settings = field(default_factory=lambda: settings)

    @property
    def health_endpoints(self) -> list[str]:
        if self.project.health_endpoints is not None:
            return self.project.health_endpoints
        return list(self.settings.health_endpoints)

    def command_env(self) -> dict[str, str]:
        """Environment exported to every pipeline command."""
        env = {
            "PROJECT_NAME": self.project.name,
            "PRODUCTION_URL": self.project.production_url,
            "GITHUB_REPO": self.project.repository,
            "DEPLOYMENT_ID": str(self.deployment_id),
            "DEPLOY_PATH": self.project.deploy_path,
            "MAIN_BRANCH": self.project.main_branch,
        }
        if self.project.staging_url:
            env["STAGING_URL"] = self.project.staging_url
        if self.commit_hash:
            env["COMMIT_HASH"] = self.commit_hash
        return env

    async def notify(self, event_type: str, **data: object) -> None:
        if self.notifier is not None:
            await self.notifier.notify(
                self.deployment_id,
                event_type,
                {"project": self.project.name, **data},
            )


class BasePhase(ABC):
    """Base class for pipeline phases.

    Subclasses implement:
    - phase: Which pipeline phase this is
    - title: Banner shown when the phase starts
    - execute(): Run the phase, returning a PhaseResult or raising PhaseError
    """

    def __init__(self):
        self.log = get_logger(f"phase.{self.phase.value}")

    @property
    @abstractmethod
    def phase(self) -> DeploymentPhase:
        """Pipeline phase identifier."""
        pass

    @property
    @abstractmethod
    def title(self) -> str:
        """Human-readable banner for the phase."""
        pass

    @abstractmethod
    async def execute(self, ctx: PhaseContext) -> PhaseResult:
        """Run the phase.

        Args:
            ctx: Per-deployment context

        Returns:
            The phase outcome

        Raises:
            PhaseError: If the phase fails fatally
        """
        pass
