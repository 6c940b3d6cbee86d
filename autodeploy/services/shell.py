"""Shell command execution for pipeline steps."""

import asyncio
import os
import time
from pathlib import Path

from pydantic import BaseModel

from autodeploy.config import settings
from autodeploy.core.exceptions import CommandError
from autodeploy.utils.logging import get_logger


class CommandResult(BaseModel):
    """Observed outcome of an external command."""

    command: str
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class ShellRunner:
    """Runs externally defined build/test/deploy commands with a timeout.

    Only the exit status and captured output streams are interpreted.
    """

    def __init__(self, default_timeout_ms: int | None = None):
        self.default_timeout_ms = default_timeout_ms or settings.command_timeout_ms
        self.logger = get_logger("shell")

    async def run(
        self,
        command: str,
        cwd: str | Path | None = None,
        timeout_ms: int | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run a command through the shell and capture its output."""
        timeout_ms = timeout_ms or self.default_timeout_ms
        start_time = time.perf_counter()

        if cwd is not None and not Path(cwd).is_dir():
            self.logger.warning("shell.missing_cwd", cwd=str(cwd), command=command)
            cwd = None

        process_env = os.environ.copy()
        if env:
            process_env.update(env)

        self.logger.debug("shell.started", command=command, cwd=str(cwd) if cwd else None)

        process = await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=process_env,
        )

        timed_out = False
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            timed_out = True
            await self._kill(process)
            stdout, stderr = b"", b""
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        result = CommandResult(
            command=command,
            returncode=process.returncode,
            stdout=stdout.decode(errors="replace") if stdout else "",
            stderr=stderr.decode(errors="replace") if stderr else "",
            duration_ms=duration_ms,
            timed_out=timed_out,
        )

        self.logger.info(
            "shell.completed",
            command=command,
            returncode=result.returncode,
            timed_out=timed_out,
            duration_ms=duration_ms,
        )
        return result

    async def run_checked(
        self,
        command: str,
        cwd: str | Path | None = None,
        timeout_ms: int | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run a command and raise CommandError unless it exits zero."""
        result = await self.run(command, cwd=cwd, timeout_ms=timeout_ms, env=env)
        if not result.ok:
            raise CommandError(
                command,
                result.returncode,
                stderr=result.stderr or result.stdout,
                timed_out=result.timed_out,
            )
        return result

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        """Kill a child that overran its timeout or whose caller was cancelled."""
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()
