"""PID file management for the supervised service."""

import os
import signal
from pathlib import Path

from autodeploy.config import settings
from autodeploy.utils.logging import get_logger, resolve_path

logger = get_logger(__name__)


class PidFile:
    """A lock-style PID record guarding against two supervisors on one port."""

    def __init__(self, path: str | Path | None = None):
        self.path = resolve_path(path or settings.supervisor_pid_file)

    def write(self, pid: int | None = None) -> int:
        pid = pid or os.getpid()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(str(pid), encoding="utf-8")
        logger.info("pidfile.written", path=str(self.path), pid=pid)
        return pid

    def read(self) -> int | None:
        """Return the recorded PID, or None when absent or unreadable."""
        if not self.path.exists():
            return None
        try:
            return int(self.path.read_text(encoding="utf-8").strip())
        except ValueError:
            logger.warning("pidfile.corrupt", path=str(self.path))
            return None

    def remove(self) -> bool:
        if not self.path.exists():
            return False
        self.path.unlink()
        logger.info("pidfile.removed", path=str(self.path))
        return True

    @staticmethod
    def is_process_running(pid: int | None) -> bool:
        """Probe a PID with signal 0."""
        if not pid:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists but owned by another user
            return True
        return True

    @staticmethod
    def kill(pid: int, sig: int = signal.SIGKILL) -> bool:
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            return False
        except PermissionError as e:
            logger.error("pidfile.kill_failed", pid=pid, error=str(e))
            return False
        logger.info("pidfile.killed", pid=pid, signal=signal.Signals(sig).name)
        return True

    def cleanup(self) -> int | None:
        """Kill a live stale process and drop the record.

        Returns:
            The stale PID found in the file, if any
        """
        pid = self.read()
        if pid is None:
            self.remove()
            logger.debug("pidfile.cleanup.nothing_to_do", path=str(self.path))
            return None

        if pid != os.getpid() and self.is_process_running(pid):
            logger.warning("pidfile.cleanup.stale_process", pid=pid)
            self.kill(pid)
        else:
            logger.info("pidfile.cleanup.not_running", pid=pid)

        self.remove()
        return pid

    def acquire(self, pid: int | None = None) -> int:
        """Clear any stale record and claim the file for ``pid``."""
        self.cleanup()
        return self.write(pid)
