"""Validation phase: pre-deployment checks."""

from autodeploy.core.exceptions import PhaseError
from autodeploy.models.deployment import DeploymentPhase, PhaseResult
from autodeploy.models.project import DEFAULT_VALIDATION_CHECKS, ValidationCheck
from autodeploy.phases.base import BasePhase, PhaseContext


class ValidationPhase(BasePhase):
    """Runs an ordered list of named checks.

    Optional failures are logged as warnings. Required failures are
    collected and raised together as one PhaseError.
    """

    def __init__(self, checks: list[ValidationCheck] | None = None):
        super().__init__()
        source = checks if checks is not None else DEFAULT_VALIDATION_CHECKS
        self.checks = [check.model_copy() for check in source]

    @classmethod
    def for_project(cls, ctx: PhaseContext) -> "ValidationPhase":
        return cls(ctx.project.validation_checks)

    @property
    def phase(self) -> DeploymentPhase:
        return DeploymentPhase.VALIDATION

    @property
    def title(self) -> str:
        return "Phase 1: pre-deployment validation"

    def add_check(self, name: str, command: str, optional: bool = True) -> None:
        """Append a check to the end of the list."""
        self.checks.append(ValidationCheck(name=name, command=command, optional=optional))

    def set_required(self, names: list[str]) -> None:
        """Mark exactly the named checks as required."""
        for check in self.checks:
            check.optional = check.name not in names

    async def execute(self, ctx: PhaseContext) -> PhaseResult:
        await ctx.logger.phase_banner(self.title, "Running local pre-validation...")

        passed = 0
        warnings: list[str] = []
        errors: list[str] = []

        for check in self.checks:
            await ctx.logger.progress(f"Running {check.name}...")
            result = await ctx.shell.run(
                check.command,
                cwd=ctx.project.deploy_path,
                env=ctx.command_env(),
            )

            if result.ok:
                await ctx.logger.success(f"{check.name} passed")
                passed += 1
                continue

            reason = "timed out" if result.timed_out else f"exit code {result.returncode}"
            message = f"{check.name} failed: {reason}"
            if check.optional:
                await ctx.logger.warning(f"{message} (optional - continuing)")
                warnings.append(message)
            else:
                await ctx.logger.error(message)
                errors.append(message)

        await ctx.logger.info(
            f"Pre-validation completed: {passed} passed, {len(errors)} failed, "
            f"{len(warnings)} warnings"
        )

        if errors:
            raise PhaseError(
                self.phase.value,
                f"Pre-validation failed: {', '.join(errors)}",
                {"errors": errors},
            )

        return PhaseResult(
            phase=self.phase,
            success=True,
            details={
                "passed": passed,
                "failed": 0,
                "warnings": warnings,
                "errors": [],
            },
        )
