"""Custom exceptions for autodeploy."""

from typing import Any


class AutodeployError(Exception):
    """Base exception for autodeploy."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ProjectNotFoundError(AutodeployError):
    """Project not registered."""

    def __init__(self, project: str):
        super().__init__(
            f"Project not found: {project}",
            {"project": project},
        )


class DeploymentNotFoundError(AutodeployError):
    """Deployment record does not exist."""

    def __init__(self, deployment_id: int):
        super().__init__(
            f"Deployment not found: {deployment_id}",
            {"deployment_id": deployment_id},
        )


class PhaseError(AutodeployError):
    """A pipeline phase failed fatally and aborted the deployment."""

    def __init__(self, phase: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, {"phase": phase, **(details or {})})
        self.phase = phase


class CommandError(AutodeployError):
    """An external command exited non-zero or timed out."""

    def __init__(
        self,
        command: str,
        returncode: int | None,
        stderr: str = "",
        timed_out: bool = False,
    ):
        if timed_out:
            message = f"Command timed out: {command}"
        else:
            message = f"Command failed with exit code {returncode}: {command}"
        details: dict[str, Any] = {"command": command, "returncode": returncode}
        if stderr:
            details["stderr"] = stderr[:1000]
        super().__init__(message, details)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        self.timed_out = timed_out


class WebhookRejection(AutodeployError):
    """Inbound webhook rejected before any deployment side effect."""

    def __init__(
        self,
        status_code: int,
        message: str,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context)
        self.status_code = status_code


class SupervisorError(AutodeployError):
    """Process supervisor failure that must not be retried."""

    pass
