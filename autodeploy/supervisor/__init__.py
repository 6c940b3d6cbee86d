"""Process supervision for the webhook service."""

from autodeploy.supervisor.pidfile import PidFile
from autodeploy.supervisor.process import (
    NORMAL_EXIT_CODES,
    ProcessSupervisor,
    SupervisorState,
    SupervisorStatus,
)

__all__ = [
    "NORMAL_EXIT_CODES",
    "PidFile",
    "ProcessSupervisor",
    "SupervisorState",
    "SupervisorStatus",
]
