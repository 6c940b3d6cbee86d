"""Core functionality for autodeploy.

The orchestrator and launcher are imported from their own modules
(``autodeploy.core.orchestrator``, ``autodeploy.core.launcher``) since
they depend on the phase executors.
"""

from autodeploy.core.exceptions import (
    AutodeployError,
    CommandError,
    DeploymentNotFoundError,
    PhaseError,
    ProjectNotFoundError,
    SupervisorError,
    WebhookRejection,
)
from autodeploy.core.events import EventBus, get_event_bus
from autodeploy.core.registry import ActiveDeploymentRegistry
from autodeploy.core.store import DeploymentStore, InMemoryDeploymentStore, get_store

__all__ = [
    "AutodeployError",
    "CommandError",
    "DeploymentNotFoundError",
    "PhaseError",
    "ProjectNotFoundError",
    "SupervisorError",
    "WebhookRejection",
    "EventBus",
    "get_event_bus",
    "ActiveDeploymentRegistry",
    "DeploymentStore",
    "InMemoryDeploymentStore",
    "get_store",
]
