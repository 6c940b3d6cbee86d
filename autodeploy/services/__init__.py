"""Services used by the deployment pipeline."""

from autodeploy.services.health_monitor import HealthMonitor
from autodeploy.services.shell import CommandResult, ShellRunner

__all__ = ["CommandResult", "HealthMonitor", "ShellRunner"]
