"""Monitoring phase: post-deployment regression watch."""

from dataclasses import dataclass, field
from datetime import datetime

from autodeploy.core.exceptions import PhaseError
from autodeploy.models.deployment import DeploymentPhase, PhaseResult
from autodeploy.phases.base import BasePhase, PhaseContext


@dataclass
class MonitoringError:
    """One failed production check."""

    error: str
    url: str
    timestamp: datetime = field(default_factory=datetime.utcnow)


class MonitoringPhase(BasePhase):
    """Polls production on a fixed interval for a configured duration.

    Raises as soon as the accumulated error count reaches the rollback
    threshold instead of waiting out the window.
    """

    def __init__(
        self,
        duration_ms: int | None = None,
        interval_ms: int | None = None,
        rollback_threshold: int | None = None,
        max_error_rate: float | None = None,
    ):
        super().__init__()
        self.duration_ms = duration_ms
        self.interval_ms = interval_ms
        self.rollback_threshold = rollback_threshold
        self.max_error_rate = max_error_rate
        self.health_checks_passed = 0
        self.errors: list[MonitoringError] = []

    @property
    def phase(self) -> DeploymentPhase:
        return DeploymentPhase.MONITORING

    @property
    def title(self) -> str:
        return "Phase 4: post-deployment monitoring"

    async def execute(self, ctx: PhaseContext) -> PhaseResult:
        duration_ms = self.duration_ms or ctx.settings.monitoring_duration_ms
        interval_ms = self.interval_ms or ctx.project.health_check_interval_ms
        max_errors = self.rollback_threshold or ctx.settings.rollback_threshold
        max_error_rate = (
            self.max_error_rate if self.max_error_rate is not None else ctx.settings.max_error_rate
        )

        await ctx.logger.phase_banner(
            self.title,
            f"Monitoring for {round(duration_ms / 1000)}s "
            f"with checks every {round(interval_ms / 1000)}s",
        )

        clock = ctx.health.clock
        start = clock()

        while (clock() - start) * 1000 < duration_ms:
            await self.perform_health_check(ctx)

            if len(self.errors) >= max_errors:
                message = f"Too many errors detected ({len(self.errors)}/{max_errors})"
                await ctx.logger.error(f"Monitoring failed: {message}")
                raise PhaseError(self.phase.value, message, {"errors": len(self.errors)})

            if (clock() - start) * 1000 < duration_ms:
                await ctx.health.sleep(interval_ms / 1000)

        if max_error_rate is not None and not await self.check_error_rate(ctx, max_error_rate):
            error_rate = self.stats()["error_rate"]
            message = f"Error rate too high: {error_rate:.2f}% (max: {max_error_rate:.2f}%)"
            raise PhaseError(self.phase.value, message, {"errors": len(self.errors)})

        stats = self.stats()
        await ctx.logger.success(
            f"Monitoring succeeded ({stats['success_rate']:.1f}% success rate)"
        )
        await ctx.logger.info(
            f"Health checks passed: {self.health_checks_passed}, Errors: {len(self.errors)}"
        )

        return PhaseResult(
            phase=self.phase,
            success=True,
            details={
                "health_checks_passed": self.health_checks_passed,
                "errors_count": len(self.errors),
                "success_rate": stats["success_rate"],
                "monitoring_duration_ms": duration_ms,
            },
        )

    async def perform_health_check(self, ctx: PhaseContext) -> None:
        """Run one production check and fold it into the counters."""
        url = ctx.project.production_url
        if not url:
            await ctx.logger.warning("Production URL not configured, skipping health check")
            return

        try:
            result = await ctx.health.check_endpoint(url)
        except Exception as exc:
            message = f"Health check error: {exc}"
            self.errors.append(MonitoringError(error=message, url=url))
            await ctx.logger.error(message)
            return

        if result.healthy:
            self.health_checks_passed += 1
            await ctx.logger.progress(f"Health check OK ({self.health_checks_passed} passed)")
        else:
            detail = result.error or result.status
            self.errors.append(
                MonitoringError(error=f"Health check failed: {detail}", url=url)
            )
            await ctx.logger.warning(f"Health check failed ({len(self.errors)} errors total)")

        limit = ctx.settings.max_response_time_ms
        if result.response_time_ms and result.response_time_ms > limit:
            await ctx.logger.warning(f"Slow response time: {result.response_time_ms}ms")

    async def check_error_rate(self, ctx: PhaseContext, max_error_rate: float) -> bool:
        """False when the error rate (percent) so far exceeds ``max_error_rate``."""
        error_rate = self.stats()["error_rate"]
        if error_rate > max_error_rate:
            await ctx.logger.error(
                f"Error rate too high: {error_rate:.2f}% (max: {max_error_rate:.2f}%)"
            )
            return False
        return True

    def stats(self) -> dict[str, object]:
        """Totals, rates (percent) and the error list so far."""
        total = self.health_checks_passed + len(self.errors)
        success_rate = self.health_checks_passed / total * 100 if total else 0.0
        error_rate = len(self.errors) / total * 100 if total else 0.0
        return {
            "total_checks": total,
            "health_checks_passed": self.health_checks_passed,
            "errors_count": len(self.errors),
            "success_rate": round(success_rate, 2),
            "error_rate": round(error_rate, 2),
            "errors": list(self.errors),
        }
