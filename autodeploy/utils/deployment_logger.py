"""Per-deployment logger.

Every line goes to structlog and is appended to the deployment's log in
the store, tagged with the phase that is currently running.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Literal

from autodeploy.utils.logging import get_logger

if TYPE_CHECKING:
    from autodeploy.core.store import DeploymentStore

Kind = Literal["SUCCESS", "INFO", "PROGRESS", "WARNING", "ERROR", "PHASE"]

# Store log levels per entry kind
STORE_LEVELS = {
    "ERROR": "error",
    "WARNING": "warn",
}


@dataclass
class LogRecord:
    """A line kept in memory for the final report."""

    kind: Kind
    message: str
    phase: str
    timestamp: datetime = field(default_factory=datetime.utcnow)


class DeploymentLogger:
    """Collects the log of one orchestration run."""

    def __init__(self, deployment_id: int, store: "DeploymentStore | None" = None):
        self.deployment_id = deployment_id
        self.store = store
        self.phase = "initialization"
        self.records: list[LogRecord] = []
        self._start = time.monotonic()
        self._logger = get_logger("deployment").bind(deployment_id=deployment_id)

    def set_phase(self, phase: str) -> None:
        self.phase = phase

    async def _log(self, kind: Kind, message: str) -> None:
        self.records.append(LogRecord(kind=kind, message=message, phase=self.phase))

        if kind == "ERROR":
            self._logger.error(message, phase=self.phase)
        elif kind == "WARNING":
            self._logger.warning(message, phase=self.phase)
        else:
            self._logger.info(message, phase=self.phase, kind=kind.lower())

        if self.store is not None:
            await self.store.add_deployment_log(
                self.deployment_id,
                self.phase,
                STORE_LEVELS.get(kind, "info"),
                message,
            )

    async def success(self, message: str) -> None:
        await self._log("SUCCESS", message)

    async def info(self, message: str) -> None:
        await self._log("INFO", message)

    async def progress(self, message: str) -> None:
        await self._log("PROGRESS", message)

    async def warning(self, message: str) -> None:
        await self._log("WARNING", message)

    async def error(self, message: str) -> None:
        await self._log("ERROR", message)

    async def phase_banner(self, title: str, message: str) -> None:
        await self._log("PHASE", f"===== {title.upper()} ===== {message}")

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)

    def count(self, kind: Kind) -> int:
        return sum(1 for r in self.records if r.kind == kind)
