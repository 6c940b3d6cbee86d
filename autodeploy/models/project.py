"""Project-related data models."""

from datetime import datetime

from pydantic import BaseModel, Field


class ValidationCheck(BaseModel):
    """A named pre-deployment check backed by a shell command."""

    name: str
    command: str
    optional: bool = True


DEFAULT_VALIDATION_CHECKS: list[ValidationCheck] = [
    ValidationCheck(name="Unit Tests", command="npm test"),
    ValidationCheck(name="Linting", command="npm run lint"),
    ValidationCheck(name="Type Check", command="npm run type-check"),
    ValidationCheck(name="Security Scan", command="npm audit --audit-level moderate"),
]


class ProjectCreate(BaseModel):
    """Request model for registering a project."""

    name: str = Field(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9._-]+$")
    repository: str = Field(..., min_length=3, pattern=r"^[^/\s]+/[^/\s]+$")
    production_url: str
    staging_url: str | None = None
    deploy_path: str
    main_branch: str = "main"
    webhook_secret: str | None = None
    environment: str = "production"
    deployment_timeout_ms: int = Field(default=600_000, gt=0)
    health_check_interval_ms: int = Field(default=30_000, gt=0)

    # Pipeline overrides (None falls back to settings)
    validation_checks: list[ValidationCheck] | None = None
    staging_deploy_command: str | None = None
    production_deploy_command: str | None = None
    backup_command: str | None = None
    rollback_command: str | None = None
    health_endpoints: list[str] | None = None


class Project(ProjectCreate):
    """A registered project as stored."""

    id: int
    active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def main_ref(self) -> str:
        """Git ref whose pushes trigger deployments."""
        return f"refs/heads/{self.main_branch}"


class ProjectResponse(BaseModel):
    """Public view of a project (never exposes the webhook secret)."""

    id: int
    name: str
    repository: str
    production_url: str
    staging_url: str | None
    deploy_path: str
    main_branch: str
    environment: str
    has_webhook_secret: bool
    active: bool
    created_at: datetime

    @classmethod
    def from_project(cls, project: Project) -> "ProjectResponse":
        return cls(
            id=project.id,
            name=project.name,
            repository=project.repository,
            production_url=project.production_url,
            staging_url=project.staging_url,
            deploy_path=project.deploy_path,
            main_branch=project.main_branch,
            environment=project.environment,
            has_webhook_secret=bool(project.webhook_secret),
            active=project.active,
            created_at=project.created_at,
        )


class ProjectStats(BaseModel):
    """Aggregate deployment statistics for one project."""

    project: str
    total_deployments: int = 0
    successful_deployments: int = 0
    failed_deployments: int = 0
    avg_duration_ms: float | None = None
    last_deployment: datetime | None = None
