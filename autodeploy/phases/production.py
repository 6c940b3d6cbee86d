"""Production phase: backup, deploy, verify, roll back on failure."""

import asyncio
from datetime import datetime

from autodeploy.core.exceptions import PhaseError
from autodeploy.models.deployment import DeploymentPhase, PhaseResult, RollbackData
from autodeploy.models.health import EndpointCheck
from autodeploy.phases.base import BasePhase, PhaseContext


def with_backup_name(command: str, backup_name: str) -> str:
    """Fill the ``{backup_name}`` placeholder; shell ``${VAR}`` syntax is left alone."""
    return command.replace("{backup_name}", backup_name)


class ProductionPhase(BasePhase):
    """Deploys to production.

    A backup record is always captured before production is touched. Any
    failure in the deploy or verification steps triggers one automatic
    rollback attempt using that backup, after which the original error is
    re-raised. Cancelling the deployment mid-deploy also rolls back.
    """

    @property
    def phase(self) -> DeploymentPhase:
        return DeploymentPhase.PRODUCTION

    @property
    def title(self) -> str:
        return "Phase 3: production deployment"

    async def execute(self, ctx: PhaseContext) -> PhaseResult:
        await ctx.logger.phase_banner(self.title, "Deploying to production...")

        rollback_data = await self.create_backup(ctx)

        try:
            await self.deploy(ctx)
            checks = await self.verify(ctx)
        except asyncio.CancelledError:
            self.log.warning("production.cancelled", project=ctx.project.name)
            # Production may be half-deployed; finish the rollback even while cancelled
            await asyncio.shield(self.rollback(ctx, rollback_data))
            raise
        except Exception as exc:
            await ctx.logger.error(f"Production deployment failed: {exc}")
            await self.rollback(ctx, rollback_data)
            if isinstance(exc, PhaseError):
                raise
            raise PhaseError(self.phase.value, str(exc)) from exc

        await ctx.logger.success("Production deployment succeeded")
        return PhaseResult(
            phase=self.phase,
            success=True,
            details={"health_checks": len(checks)},
            rollback_data=rollback_data,
        )

    async def create_backup(self, ctx: PhaseContext) -> RollbackData:
        """Capture rollback context; a failing backup command is tolerated."""
        await ctx.logger.progress("Creating production backup...")

        timestamp = datetime.utcnow().strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        rollback_data = RollbackData(
            backup_name=f"backup-{ctx.project.name}-{timestamp}",
            timestamp=timestamp,
            project_name=ctx.project.name,
            production_url=ctx.project.production_url,
            previous_commit=await self._current_commit(ctx),
        )

        command = with_backup_name(
            ctx.project.backup_command or ctx.settings.backup_command,
            rollback_data.backup_name,
        )
        try:
            result = await ctx.shell.run(
                command,
                cwd=ctx.project.deploy_path,
                env=self._backup_env(ctx, rollback_data),
            )
            backed_up = result.ok
        except OSError as exc:
            self.log.warning("production.backup_unavailable", error=str(exc))
            backed_up = False

        if backed_up:
            await ctx.logger.success(f"Backup created: {rollback_data.backup_name}")
        else:
            rollback_data.has_backup = False
            await ctx.logger.warning("Backup command unavailable, continuing without backup")

        return rollback_data

    async def deploy(self, ctx: PhaseContext) -> None:
        """Run the production deploy command under the project timeout."""
        await ctx.logger.progress("Deploying to production...")
        command = ctx.project.production_deploy_command or ctx.settings.production_deploy_command
        await ctx.shell.run_checked(
            command,
            cwd=ctx.project.deploy_path,
            timeout_ms=ctx.project.deployment_timeout_ms,
            env=ctx.command_env(),
        )
        await ctx.logger.success("Production deploy command completed")

    async def verify(self, ctx: PhaseContext) -> list[EndpointCheck]:
        """Wait for production to be reachable, then check every endpoint."""
        await ctx.logger.progress("Verifying production deployment...")
        production_url = ctx.project.production_url

        if not await ctx.health.wait_for_service(production_url):
            raise PhaseError(
                self.phase.value,
                f"Production service at {production_url} not available after "
                f"{ctx.settings.service_wait_attempts} attempts",
            )

        results: list[EndpointCheck] = []
        for endpoint in ctx.health_endpoints:
            url = f"{production_url.rstrip('/')}{endpoint}"
            result = await ctx.health.check_endpoint(url)
            results.append(result)
            if not result.healthy:
                raise PhaseError(
                    self.phase.value, f"Production health check failed for {url}"
                )

        await ctx.logger.success(f"Health checks passed: {len(results)} endpoints verified")
        return results

    async def rollback(self, ctx: PhaseContext, rollback_data: RollbackData) -> bool:
        """Attempt one automatic rollback. Never raises."""
        await ctx.logger.warning("Starting automatic rollback...")

        if not rollback_data.has_backup:
            await ctx.logger.warning("No backup available for rollback")
            return False

        command = with_backup_name(
            ctx.project.rollback_command or ctx.settings.rollback_command,
            rollback_data.backup_name,
        )
        try:
            await ctx.shell.run_checked(
                command,
                cwd=ctx.project.deploy_path,
                timeout_ms=ctx.settings.rollback_timeout_ms,
                env=self._backup_env(ctx, rollback_data),
            )
        except Exception as exc:
            self.log.error("production.rollback_failed", error=str(exc))
            await ctx.logger.error(f"Rollback failed: {exc}")
            await ctx.logger.error("MANUAL INTERVENTION REQUIRED")
            return False

        await ctx.logger.success(f"Rollback completed using {rollback_data.backup_name}")
        return True

    def _backup_env(self, ctx: PhaseContext, rollback_data: RollbackData) -> dict[str, str]:
        env = ctx.command_env()
        env["BACKUP_NAME"] = rollback_data.backup_name
        return env

    async def _current_commit(self, ctx: PhaseContext) -> str | None:
        """Commit currently checked out in the deploy path, if it is a git tree."""
        result = await ctx.shell.run(
            "git rev-parse HEAD",
            cwd=ctx.project.deploy_path,
            timeout_ms=10_000,
        )
        if not result.ok:
            return None
        return result.stdout.strip() or None
