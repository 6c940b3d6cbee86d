"""Process supervisor for the long-running webhook service.

The supervisor is a state machine over one child process. ``TRANSITIONS``
is the only source of truth for legal moves; signal handlers merely
request a shutdown, which becomes a transition:

    stopped -> starting -> running -> exited|errored -> restarting -> starting
    any live state -> shutting_down -> stopped
"""

import asyncio
import os
import signal
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from autodeploy.config import Settings, settings
from autodeploy.core.exceptions import SupervisorError
from autodeploy.utils.logging import get_logger, resolve_path

logger = get_logger(__name__)

# 0 = success, 2 = usage error, 130 = interrupted by SIGINT
NORMAL_EXIT_CODES = frozenset({0, 2, 130})

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT, signal.SIGHUP)


class SupervisorState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    ERRORED = "errored"
    RESTARTING = "restarting"
    SHUTTING_DOWN = "shutting_down"


TRANSITIONS: dict[SupervisorState, frozenset[SupervisorState]] = {
    SupervisorState.STOPPED: frozenset(
        {SupervisorState.STARTING, SupervisorState.SHUTTING_DOWN}
    ),
    SupervisorState.STARTING: frozenset(
        {SupervisorState.RUNNING, SupervisorState.ERRORED, SupervisorState.SHUTTING_DOWN}
    ),
    SupervisorState.RUNNING: frozenset(
        {SupervisorState.EXITED, SupervisorState.SHUTTING_DOWN}
    ),
    SupervisorState.EXITED: frozenset(
        {SupervisorState.RESTARTING, SupervisorState.STOPPED, SupervisorState.SHUTTING_DOWN}
    ),
    SupervisorState.ERRORED: frozenset(
        {SupervisorState.RESTARTING, SupervisorState.STOPPED, SupervisorState.SHUTTING_DOWN}
    ),
    SupervisorState.RESTARTING: frozenset(
        {SupervisorState.STARTING, SupervisorState.SHUTTING_DOWN}
    ),
    SupervisorState.SHUTTING_DOWN: frozenset({SupervisorState.STOPPED}),
}


class SupervisorStatus(BaseModel):
    """Snapshot of the supervised process."""

    state: SupervisorState
    pid: int | None = None
    is_running: bool = False
    restart_count: int = 0
    is_shutting_down: bool = False
    last_exit_code: int | None = None
    target: str


SpawnFn = Callable[..., Awaitable[Any]]


class ProcessSupervisor:
    """Spawns the service, restarts it on crashes and forwards shutdown signals.

    Restart policy:
    - exit codes in ``NORMAL_EXIT_CODES`` never restart
    - any other exit restarts after ``restart_delay`` while
      ``restart_count < max_restarts``
    - ``restart_count`` returns to zero once a child stays up for
      ``min_uptime`` seconds
    - an exhausted budget makes ``run()`` return 1
    """

    def __init__(
        self,
        target: str | Path | None = None,
        python: str | None = None,
        max_restarts: int | None = None,
        restart_delay: float | None = None,
        grace_period: float | None = None,
        min_uptime: float | None = None,
        env: dict[str, str] | None = None,
        spawn: SpawnFn | None = None,
        config: Settings | None = None,
    ):
        config = config or settings
        self.target = resolve_path(target or config.supervisor_target)
        self.python = python or config.supervisor_python or sys.executable
        self.max_restarts = (
            max_restarts if max_restarts is not None else config.supervisor_max_restarts
        )
        self.restart_delay = (
            restart_delay if restart_delay is not None else config.supervisor_restart_delay
        )
        self.grace_period = (
            grace_period if grace_period is not None else config.supervisor_grace_period
        )
        self.min_uptime = min_uptime if min_uptime is not None else config.supervisor_min_uptime
        self.env = {"APP_ENV": "production", "API_PORT": str(config.api_port), **(env or {})}
        self._spawn = spawn or asyncio.create_subprocess_exec

        self.state = SupervisorState.STOPPED
        self.process: Any = None
        self.restart_count = 0
        self.is_shutting_down = False
        self.last_exit_code: int | None = None
        self._shutdown_requested = asyncio.Event()
        self._force_kill_task: asyncio.Task[None] | None = None

    # State machine

    def _transition(self, new_state: SupervisorState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise SupervisorError(
                f"Invalid supervisor transition: {self.state.value} -> {new_state.value}",
                {"from": self.state.value, "to": new_state.value},
            )
        logger.debug(
            "supervisor.transition", from_state=self.state.value, to_state=new_state.value
        )
        self.state = new_state

    def should_restart(self, exit_code: int | None) -> bool:
        """Whether a child exit with ``exit_code`` warrants another spawn."""
        if exit_code in NORMAL_EXIT_CODES:
            return False
        return self.restart_count < self.max_restarts

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    def status(self) -> SupervisorStatus:
        return SupervisorStatus(
            state=self.state,
            pid=self.process.pid if self.process is not None else None,
            is_running=self.is_running,
            restart_count=self.restart_count,
            is_shutting_down=self.is_shutting_down,
            last_exit_code=self.last_exit_code,
            target=str(self.target),
        )

    # Lifecycle

    def validate_target(self) -> None:
        if not self.target.exists():
            raise SupervisorError(
                f"Server script not found: {self.target}",
                {"target": str(self.target)},
            )

    async def start(self) -> Any:
        """Spawn the child process.

        Raises:
            SupervisorError: If the target script does not exist
            OSError: If the interpreter cannot be spawned
        """
        self.validate_target()
        self._transition(SupervisorState.STARTING)
        logger.info(
            "supervisor.starting",
            target=str(self.target),
            python=self.python,
            attempt=self.restart_count + 1,
        )

        try:
            process = await self._spawn(
                self.python, str(self.target), env={**os.environ, **self.env}
            )
        except OSError as e:
            logger.error("supervisor.spawn_failed", error=str(e))
            if not self.is_shutting_down:
                self._transition(SupervisorState.ERRORED)
            raise

        self.process = process
        logger.info("supervisor.spawned", pid=process.pid)

        if self.is_shutting_down:
            # Shutdown arrived while spawning
            self._forward_signal(signal.SIGTERM)
        else:
            self._transition(SupervisorState.RUNNING)
        return process

    async def _wait_for_exit(self) -> int:
        """Wait for the child, resetting the restart budget once it proves stable."""
        waiter = asyncio.ensure_future(self.process.wait())
        done, _ = await asyncio.wait({waiter}, timeout=self.min_uptime)
        if not done:
            if self.restart_count:
                logger.info("supervisor.stable", restarts_cleared=self.restart_count)
            self.restart_count = 0
        return await waiter

    async def _restart_wait(self) -> bool:
        """Sleep out the restart delay; False if a shutdown interrupted it."""
        self._transition(SupervisorState.RESTARTING)
        self.restart_count += 1
        logger.warning(
            "supervisor.restarting",
            attempt=self.restart_count,
            max_restarts=self.max_restarts,
            delay_seconds=self.restart_delay,
        )
        try:
            await asyncio.wait_for(self._shutdown_requested.wait(), timeout=self.restart_delay)
        except asyncio.TimeoutError:
            pass
        return not self.is_shutting_down

    async def run(self) -> int:
        """Supervise the service until it exits normally, is shut down or gives up.

        Returns:
            Process exit code for the supervisor itself

        Raises:
            SupervisorError: If the target script does not exist
        """
        self.validate_target()
        self._install_signal_handlers()

        try:
            while True:
                try:
                    await self.start()
                except OSError:
                    if self.is_shutting_down:
                        self._transition(SupervisorState.STOPPED)
                        return 1
                    if self.restart_count >= self.max_restarts:
                        self._transition(SupervisorState.STOPPED)
                        logger.error(
                            "supervisor.restart_budget_exhausted",
                            max_restarts=self.max_restarts,
                        )
                        return 1
                    if not await self._restart_wait():
                        self._transition(SupervisorState.STOPPED)
                        return 0
                    continue

                exit_code = await self._wait_for_exit()
                self.last_exit_code = exit_code
                logger.info("supervisor.child_exited", exit_code=exit_code)

                if self.is_shutting_down:
                    self._transition(SupervisorState.STOPPED)
                    logger.info("supervisor.stopped", exit_code=exit_code)
                    # Negative codes mean our forwarded signal ended the child
                    return exit_code if exit_code > 0 else 0

                self._transition(SupervisorState.EXITED)
                if not self.should_restart(exit_code):
                    self._transition(SupervisorState.STOPPED)
                    if exit_code in NORMAL_EXIT_CODES:
                        logger.info("supervisor.stopped", exit_code=exit_code)
                        return exit_code
                    logger.error(
                        "supervisor.restart_budget_exhausted",
                        max_restarts=self.max_restarts,
                        exit_code=exit_code,
                    )
                    return 1

                if not await self._restart_wait():
                    self._transition(SupervisorState.STOPPED)
                    return 0
        finally:
            self._remove_signal_handlers()
            if self._force_kill_task is not None:
                self._force_kill_task.cancel()

    # Shutdown

    def request_shutdown(self, sig: int = signal.SIGTERM) -> None:
        """Begin a graceful shutdown: forward ``sig`` and arm the force-kill timer."""
        if self.is_shutting_down:
            return

        logger.info("supervisor.shutdown_requested", signal=signal.Signals(sig).name)
        self.is_shutting_down = True
        self._shutdown_requested.set()
        if self.state != SupervisorState.SHUTTING_DOWN:
            self._transition(SupervisorState.SHUTTING_DOWN)

        if self.is_running:
            self._forward_signal(sig)

    def _forward_signal(self, sig: int) -> None:
        logger.info(
            "supervisor.stopping_child", pid=self.process.pid, signal=signal.Signals(sig).name
        )
        try:
            self.process.send_signal(sig)
        except ProcessLookupError:
            return
        self._force_kill_task = asyncio.ensure_future(self._force_kill_after_grace())

    async def _force_kill_after_grace(self) -> None:
        await asyncio.sleep(self.grace_period)
        if self.is_running:
            logger.warning(
                "supervisor.force_kill", pid=self.process.pid, grace_seconds=self.grace_period
            )
            self.process.kill()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self.request_shutdown, sig)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(sig)
