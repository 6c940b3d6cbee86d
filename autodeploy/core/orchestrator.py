"""Deployment Orchestrator.

Runs the deployment phases strictly in sequence for one deployment
attempt, records progress in the store, and always emits a final report.
"""

from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any

from autodeploy.config import Settings, settings
from autodeploy.core.events import EventBus, get_event_bus
from autodeploy.core.store import DeploymentStore, get_store
from autodeploy.models.deployment import (
    DeploymentError,
    DeploymentPhase,
    DeploymentReport,
    DeploymentStatus,
    RollbackData,
)
from autodeploy.models.project import Project
from autodeploy.phases import (
    BasePhase,
    MonitoringPhase,
    PhaseContext,
    ProductionPhase,
    StagingPhase,
    ValidationPhase,
)
from autodeploy.services.health_monitor import HealthMonitor
from autodeploy.services.shell import ShellRunner
from autodeploy.utils.deployment_logger import DeploymentLogger
from autodeploy.utils.logging import get_logger


@dataclass
class DeploymentRun:
    """In-flight state of one orchestration run."""

    deployment_id: int
    project: Project
    report: DeploymentReport
    current_phase: DeploymentPhase | None = None
    rollback_data: RollbackData | None = None
    started: datetime = field(default_factory=datetime.utcnow)

    @property
    def phase_label(self) -> str:
        return self.current_phase.value if self.current_phase else "initialization"

    def snapshot(self) -> dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "project": self.project.name,
            "production_url": self.project.production_url,
            "current_phase": self.phase_label,
            "results": self.report.model_dump(mode="json"),
            "rollback_data": (
                self.rollback_data.model_dump(mode="json") if self.rollback_data else None
            ),
        }


class DeploymentOrchestrator:
    """Orchestrates the deployment pipeline.

    Pipeline phases:
    1. validation - pre-deployment checks (fatal on required failures)
    2. staging - best-effort rehearsal (never fatal)
    3. production - backup, deploy, verify, automatic rollback (fatal)
    4. monitoring - post-deployment regression watch (fatal on threshold)
    """

    def __init__(
        self,
        store: DeploymentStore | None = None,
        events: EventBus | None = None,
        health: HealthMonitor | None = None,
        shell: ShellRunner | None = None,
        config: Settings | None = None,
    ):
        self.store = store or get_store()
        self.events = events or get_event_bus()
        self.health = health or HealthMonitor()
        self.shell = shell or ShellRunner()
        self.settings = config or settings
        self.logger = get_logger("orchestrator")
        self.runs: dict[int, DeploymentRun] = {}

    def build_phases(self, ctx: PhaseContext) -> list[BasePhase]:
        """Fresh phase executors for one run, in execution order."""
        return [
            ValidationPhase.for_project(ctx),
            StagingPhase(),
            ProductionPhase(),
            MonitoringPhase(),
        ]

    def get_status(self, deployment_id: int) -> dict[str, Any] | None:
        """Snapshot of an in-flight run."""
        run = self.runs.get(deployment_id)
        return run.snapshot() if run else None

    async def run(
        self,
        project: Project,
        deployment_id: int,
        commit_hash: str | None = None,
    ) -> DeploymentReport:
        """Run the complete pipeline for a deployment.

        Args:
            project: The project being deployed
            deployment_id: Store id of the pending deployment
            commit_hash: Commit being deployed, if known

        Returns:
            The final deployment report

        Raises:
            PhaseError: If validation, production or monitoring fails
        """
        deploy_log = DeploymentLogger(deployment_id, self.store)
        run = DeploymentRun(
            deployment_id=deployment_id,
            project=project,
            report=DeploymentReport(
                deployment_id=deployment_id,
                project_name=project.name,
                production_url=project.production_url,
                start_time=datetime.utcnow(),
            ),
        )
        ctx = PhaseContext(
            deployment_id=deployment_id,
            project=project,
            logger=deploy_log,
            health=self.health,
            shell=self.shell,
            commit_hash=commit_hash,
            notifier=self.events,
            settings=self.settings,
        )
        self.runs[deployment_id] = run

        self.logger.info(
            "orchestrator.pipeline.started",
            deployment_id=deployment_id,
            project=project.name,
            commit=commit_hash,
        )

        try:
            await self.store.update_deployment_status(deployment_id, DeploymentStatus.RUNNING)
            await deploy_log.info(
                f"Starting deployment {deployment_id} for {project.name} "
                f"({project.production_url})"
            )

            for phase in self.build_phases(ctx):
                run.current_phase = phase.phase
                deploy_log.set_phase(phase.phase.value)
                await self.store.update_deployment_status(
                    deployment_id, DeploymentStatus.RUNNING, phase=phase.phase
                )
                await self.events.notify(
                    deployment_id, "phase_started", {"phase": phase.phase.value}
                )

                result = await phase.execute(ctx)
                run.report.phases[phase.phase.value] = result
                if result.rollback_data is not None:
                    run.rollback_data = result.rollback_data

                await self.events.notify(
                    deployment_id,
                    "phase_completed",
                    {
                        "phase": phase.phase.value,
                        "success": result.success,
                        "skipped": result.skipped,
                    },
                )

            run.report.success = True
            await deploy_log.success("Production deployment completed successfully")
            await self.store.update_deployment_status(deployment_id, DeploymentStatus.SUCCESS)
            await self.events.notify(
                deployment_id,
                "success",
                {"project": project.name, "url": project.production_url},
            )

            self.logger.info(
                "orchestrator.pipeline.completed",
                deployment_id=deployment_id,
                project=project.name,
            )
            return run.report

        except Exception as exc:
            message = str(exc) or type(exc).__name__
            run.report.success = False
            run.report.errors.append(DeploymentError(message=message, phase=run.phase_label))

            self.logger.error(
                "orchestrator.pipeline.failed",
                deployment_id=deployment_id,
                project=project.name,
                phase=run.phase_label,
                error=message,
            )

            await deploy_log.error(f"Deployment failed: {message}")
            await self.store.update_deployment_status(
                deployment_id, DeploymentStatus.FAILED, error=message
            )
            await self.events.notify(
                deployment_id,
                "failed",
                {"project": project.name, "phase": run.phase_label, "error": message},
            )
            raise

        finally:
            self.runs.pop(deployment_id, None)
            self._finalize_report(run, deploy_log)

    def _finalize_report(self, run: DeploymentRun, deploy_log: DeploymentLogger) -> None:
        """Fill in timing and log counters, then emit the report."""
        report = run.report
        report.end_time = datetime.utcnow()
        report.duration_ms = int((report.end_time - report.start_time).total_seconds() * 1000)
        report.phases_completed = len(report.phases)
        report.success_count = deploy_log.count("SUCCESS")
        report.warning_count = deploy_log.count("WARNING")
        report.error_count = deploy_log.count("ERROR")
        report.total_logs = len(deploy_log.records)

        self.logger.info(
            "orchestrator.report",
            deployment_id=report.deployment_id,
            project=report.project_name,
            success=report.success,
            duration_ms=report.duration_ms,
            phases_completed=report.phases_completed,
            errors=[e.model_dump(mode="json") for e in report.errors],
        )
        for line in report.summary_lines():
            self.logger.info(line, deployment_id=report.deployment_id)


@lru_cache(maxsize=1)
def get_orchestrator() -> DeploymentOrchestrator:
    """Get the orchestrator singleton."""
    return DeploymentOrchestrator()
