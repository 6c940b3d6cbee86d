"""Data models for autodeploy."""

from autodeploy.models.deployment import (
    ActiveDeployment,
    Deployment,
    DeploymentCreate,
    DeploymentError,
    DeploymentListResponse,
    DeploymentLogEntry,
    DeploymentPhase,
    DeploymentReport,
    DeploymentStatus,
    PhaseResult,
    RollbackData,
)
from autodeploy.models.health import (
    EndpointCheck,
    HealthCheckSummary,
    MonitoringCheck,
    MonitoringResult,
)
from autodeploy.models.project import (
    DEFAULT_VALIDATION_CHECKS,
    Project,
    ProjectCreate,
    ProjectResponse,
    ProjectStats,
    ValidationCheck,
)
from autodeploy.models.webhook import WebhookAction, WebhookResponse

__all__ = [
    # Project models
    "Project",
    "ProjectCreate",
    "ProjectResponse",
    "ProjectStats",
    "ValidationCheck",
    "DEFAULT_VALIDATION_CHECKS",
    # Deployment models
    "ActiveDeployment",
    "Deployment",
    "DeploymentCreate",
    "DeploymentError",
    "DeploymentListResponse",
    "DeploymentLogEntry",
    "DeploymentPhase",
    "DeploymentReport",
    "DeploymentStatus",
    "PhaseResult",
    "RollbackData",
    # Health models
    "EndpointCheck",
    "HealthCheckSummary",
    "MonitoringCheck",
    "MonitoringResult",
    # Webhook models
    "WebhookAction",
    "WebhookResponse",
]
