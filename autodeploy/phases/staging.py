"""Staging phase: best-effort pre-production rehearsal."""

import time

from autodeploy.core.exceptions import PhaseError
from autodeploy.models.deployment import DeploymentPhase, PhaseResult
from autodeploy.models.health import EndpointCheck
from autodeploy.phases.base import BasePhase, PhaseContext


class StagingPhase(BasePhase):
    """Deploys to staging, waits for it, then smoke- and performance-tests it.

    Staging is advisory: any failure is downgraded to a skipped result so
    the pipeline always proceeds to production.
    """

    @property
    def phase(self) -> DeploymentPhase:
        return DeploymentPhase.STAGING

    @property
    def title(self) -> str:
        return "Phase 2: staging deployment"

    async def execute(self, ctx: PhaseContext) -> PhaseResult:
        await ctx.logger.phase_banner(self.title, "Deploying to staging...")

        try:
            await self._deploy(ctx)

            details: dict[str, object] = {}
            staging_url = ctx.project.staging_url
            if staging_url:
                if not await ctx.health.wait_for_service(staging_url):
                    raise PhaseError(
                        self.phase.value,
                        f"Service at {staging_url} not available",
                    )
                await ctx.logger.success(f"Staging available at {staging_url}")

                smoke = await self._smoke_tests(ctx, staging_url)
                details["smoke_tests"] = len(smoke)
                details["performance"] = await self._performance_probe(ctx, staging_url)

            await ctx.logger.success("Staging deployment succeeded")
            return PhaseResult(phase=self.phase, success=True, details=details)

        except Exception as exc:
            error = str(exc) or type(exc).__name__
            self.log.warning("staging.skipped", error=error)
            await ctx.logger.warning(
                f"Staging skipped ({error}); continuing with production"
            )
            await ctx.notify("warning", phase=self.phase.value, message=f"Staging skipped: {error}")
            return PhaseResult(phase=self.phase, success=False, skipped=True, error=error)

    async def _deploy(self, ctx: PhaseContext) -> None:
        command = ctx.project.staging_deploy_command or ctx.settings.staging_deploy_command
        await ctx.logger.progress("Deploying to staging environment...")
        await ctx.shell.run_checked(
            command,
            cwd=ctx.project.deploy_path,
            timeout_ms=ctx.project.deployment_timeout_ms,
            env=ctx.command_env(),
        )
        await ctx.logger.success("Staging deploy command completed")

    async def _smoke_tests(self, ctx: PhaseContext, base_url: str) -> list[EndpointCheck]:
        """Check every health endpoint; the first failure aborts."""
        await ctx.logger.progress("Running staging smoke tests...")
        results: list[EndpointCheck] = []

        for endpoint in ctx.health_endpoints:
            url = f"{base_url.rstrip('/')}{endpoint}"
            result = await ctx.health.check_endpoint(url)
            results.append(result)
            if not result.healthy:
                raise PhaseError(self.phase.value, f"Smoke test failed for {url}")

        await ctx.logger.success(f"Smoke tests passed: {len(results)} endpoints verified")
        return results

    async def _performance_probe(self, ctx: PhaseContext, base_url: str) -> dict[str, object]:
        """Time one request against the staging root."""
        await ctx.logger.progress("Running performance probe...")
        start = time.perf_counter()
        result = await ctx.health.check_endpoint(base_url)
        response_time_ms = int((time.perf_counter() - start) * 1000)
        limit = ctx.settings.max_response_time_ms

        if response_time_ms > limit:
            await ctx.logger.warning(
                f"High response time: {response_time_ms}ms (max: {limit}ms)"
            )
        else:
            await ctx.logger.success(f"Response time: {response_time_ms}ms")

        return {"response_time_ms": response_time_ms, "healthy": result.healthy}
