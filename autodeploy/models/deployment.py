"""Deployment data models."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class DeploymentStatus(str, Enum):
    """Deployment lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            DeploymentStatus.SUCCESS,
            DeploymentStatus.FAILED,
            DeploymentStatus.CANCELLED,
        )


class DeploymentPhase(str, Enum):
    """Pipeline phases, in execution order."""

    VALIDATION = "validation"
    STAGING = "staging"
    PRODUCTION = "production"
    MONITORING = "monitoring"


LogLevel = Literal["info", "warn", "error"]


class DeploymentCreate(BaseModel):
    """Metadata recorded when a deployment is requested."""

    commit_hash: str | None = None
    commit_message: str | None = None
    branch: str | None = None
    trigger: Literal["push", "release", "manual"] = "push"
    triggered_by: str = "webhook"


class Deployment(BaseModel):
    """One orchestration run of the phase pipeline."""

    id: int
    project_id: int
    commit_hash: str | None = None
    commit_message: str | None = None
    branch: str | None = None
    trigger: str = "push"
    triggered_by: str = "webhook"

    status: DeploymentStatus = DeploymentStatus.PENDING
    phase: DeploymentPhase | None = None

    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None
    duration_ms: int | None = None
    error_message: str | None = None


class DeploymentLogEntry(BaseModel):
    """Append-only log line tied to a deployment."""

    deployment_id: int
    phase: str
    level: LogLevel = "info"
    message: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class RollbackData(BaseModel):
    """Context captured before production deploy to reverse it."""

    backup_name: str
    timestamp: str
    project_name: str
    production_url: str | None = None
    previous_commit: str | None = None
    has_backup: bool = True


class PhaseResult(BaseModel):
    """Transient outcome of a single phase."""

    phase: DeploymentPhase
    success: bool
    skipped: bool = False
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    rollback_data: RollbackData | None = None


class DeploymentError(BaseModel):
    """An error folded into the deployment report."""

    message: str
    phase: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class DeploymentReport(BaseModel):
    """Final summary emitted for every run, successful or not."""

    deployment_id: int
    project_name: str
    production_url: str | None = None
    success: bool = False
    phases: dict[str, PhaseResult] = Field(default_factory=dict)
    errors: list[DeploymentError] = Field(default_factory=list)
    start_time: datetime
    end_time: datetime | None = None
    duration_ms: int = 0
    phases_completed: int = 0
    total_phases: int = len(DeploymentPhase)

    # Log counters
    success_count: int = 0
    warning_count: int = 0
    error_count: int = 0
    total_logs: int = 0

    def summary_lines(self) -> list[str]:
        """Human-readable report lines."""
        lines = [
            f"DEPLOYMENT SUMMARY - {self.deployment_id}",
            "=" * 60,
            f"Project: {self.project_name}",
            f"Production URL: {self.production_url or 'n/a'}",
            f"Total Duration: {round(self.duration_ms / 1000)}s",
            f"Success: {'YES' if self.success else 'NO'}",
            f"Phases Completed: {self.phases_completed}/{self.total_phases}",
            f"Warnings: {self.warning_count}  Errors logged: {self.error_count}",
        ]
        if self.errors:
            lines.append(f"Errors: {len(self.errors)}")
            lines.extend(f"   - {e.phase}: {e.message}" for e in self.errors)
        lines.append("=" * 60)
        return lines


class ActiveDeployment(BaseModel):
    """A registry entry for an in-flight deployment."""

    project: str
    deployment_id: int


class DeploymentListResponse(BaseModel):
    """Response for listing deployments."""

    deployments: list[Deployment]
    limit: int
    offset: int
