"""Unit tests for the process supervisor, PID file and CLI."""

import asyncio
import json
import os
import signal

import pytest
from typer.testing import CliRunner

from autodeploy.core.exceptions import SupervisorError
from autodeploy.supervisor import PidFile, ProcessSupervisor, SupervisorState
from autodeploy.supervisor.cli import app


class FakeProcess:
    """Child process stand-in with a scripted exit."""

    def __init__(self, pid: int, exit_code: int, lifetime: float = 0.0, blocking: bool = False,
                 ignores_sigterm: bool = False):
        self.pid = pid
        self.exit_code = exit_code
        self.lifetime = lifetime
        self.ignores_sigterm = ignores_sigterm
        self.returncode: int | None = None
        self.signals: list[int] = []
        self.killed = False
        self._released = asyncio.Event()
        if not blocking:
            self._released.set()

    async def wait(self) -> int:
        if self.lifetime:
            await asyncio.sleep(self.lifetime)
        await self._released.wait()
        if self.returncode is None:
            self.returncode = self.exit_code
        return self.returncode

    def send_signal(self, sig: int) -> None:
        self.signals.append(sig)
        if not self.ignores_sigterm:
            self.returncode = -sig
            self._released.set()

    def kill(self) -> None:
        self.killed = True
        self.returncode = -signal.SIGKILL
        self._released.set()


class FakeSpawner:
    """Hands out scripted processes and records every spawn."""

    def __init__(self, *processes: FakeProcess, error: OSError | None = None):
        self.processes = list(processes)
        self.error = error
        self.calls: list[tuple[tuple, dict]] = []

    async def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        if self.error is not None:
            raise self.error
        return self.processes.pop(0)


@pytest.fixture
def target(tmp_path):
    script = tmp_path / "server.py"
    script.write_text("print('serving')\n")
    return script


def make_supervisor(target, spawner, **kwargs) -> ProcessSupervisor:
    options = {"max_restarts": 5, "restart_delay": 0, "grace_period": 10, "min_uptime": 1}
    options.update(kwargs)
    return ProcessSupervisor(target=target, python="python-test", spawn=spawner, **options)


async def wait_for_state(supervisor: ProcessSupervisor, state: SupervisorState) -> None:
    for _ in range(100):
        if supervisor.state == state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"supervisor never reached {state.value}")


class TestRestartPolicy:
    """Tests for restart decisions and the state machine."""

    @pytest.mark.parametrize(
        "exit_code, restart_count, expected",
        [
            (0, 0, False),
            (2, 0, False),
            (130, 0, False),
            (1, 0, True),
            (-9, 4, True),
            (1, 5, False),
        ],
    )
    def test_should_restart(self, target, exit_code, restart_count, expected):
        supervisor = make_supervisor(target, FakeSpawner())
        supervisor.restart_count = restart_count

        assert supervisor.should_restart(exit_code) is expected

    def test_invalid_transition_raises(self, target):
        supervisor = make_supervisor(target, FakeSpawner())

        with pytest.raises(SupervisorError) as exc_info:
            supervisor._transition(SupervisorState.RUNNING)

        assert exc_info.value.details == {"from": "stopped", "to": "running"}
        assert supervisor.state == SupervisorState.STOPPED

    def test_status_before_start(self, target):
        status = make_supervisor(target, FakeSpawner()).status()

        assert status.state == SupervisorState.STOPPED
        assert status.pid is None
        assert status.is_running is False
        assert status.target == str(target)


class TestSupervisorRun:
    """Tests for the supervision loop."""

    @pytest.mark.asyncio
    async def test_normal_exit_is_not_restarted(self, target):
        spawner = FakeSpawner(FakeProcess(pid=101, exit_code=0))
        supervisor = make_supervisor(target, spawner)

        assert await supervisor.run() == 0

        assert len(spawner.calls) == 1
        assert supervisor.state == SupervisorState.STOPPED
        assert supervisor.last_exit_code == 0

    @pytest.mark.asyncio
    async def test_spawn_uses_interpreter_target_and_env(self, target):
        spawner = FakeSpawner(FakeProcess(pid=101, exit_code=0))
        supervisor = make_supervisor(target, spawner, env={"EXTRA": "1"})

        await supervisor.run()

        args, kwargs = spawner.calls[0]
        assert args == ("python-test", str(target))
        assert kwargs["env"]["APP_ENV"] == "production"
        assert kwargs["env"]["EXTRA"] == "1"
        assert "API_PORT" in kwargs["env"]

    @pytest.mark.asyncio
    async def test_crash_loop_gives_up_after_budget(self, target):
        spawner = FakeSpawner(*(FakeProcess(pid=100 + i, exit_code=1) for i in range(3)))
        supervisor = make_supervisor(target, spawner, max_restarts=2)

        assert await supervisor.run() == 1

        assert len(spawner.calls) == 3
        assert supervisor.restart_count == 2
        assert supervisor.last_exit_code == 1

    @pytest.mark.asyncio
    async def test_stable_child_resets_restart_budget(self, target):
        spawner = FakeSpawner(
            FakeProcess(pid=101, exit_code=1),
            FakeProcess(pid=102, exit_code=1, lifetime=0.05),
            FakeProcess(pid=103, exit_code=0),
        )
        supervisor = make_supervisor(target, spawner, max_restarts=1, min_uptime=0.01)

        # Without the reset the second crash would exhaust a budget of one
        assert await supervisor.run() == 0
        assert len(spawner.calls) == 3

    @pytest.mark.asyncio
    async def test_spawn_failures_count_against_budget(self, target):
        spawner = FakeSpawner(error=FileNotFoundError("python-test"))
        supervisor = make_supervisor(target, spawner, max_restarts=1)

        assert await supervisor.run() == 1

        assert len(spawner.calls) == 2
        assert supervisor.state == SupervisorState.STOPPED

    @pytest.mark.asyncio
    async def test_missing_target(self, tmp_path):
        spawner = FakeSpawner()
        supervisor = make_supervisor(tmp_path / "missing.py", spawner)

        with pytest.raises(SupervisorError) as exc_info:
            await supervisor.run()

        assert "Server script not found" in exc_info.value.message
        assert spawner.calls == []


class TestShutdown:
    """Tests for signal forwarding."""

    @pytest.mark.asyncio
    async def test_shutdown_forwards_signal_and_stops(self, target):
        child = FakeProcess(pid=101, exit_code=0, blocking=True)
        supervisor = make_supervisor(target, FakeSpawner(child))

        run = asyncio.create_task(supervisor.run())
        await wait_for_state(supervisor, SupervisorState.RUNNING)
        supervisor.request_shutdown(signal.SIGTERM)

        assert await run == 0
        assert child.signals == [signal.SIGTERM]
        assert child.killed is False
        assert supervisor.state == SupervisorState.STOPPED
        assert supervisor.is_shutting_down is True

    @pytest.mark.asyncio
    async def test_stubborn_child_is_killed_after_grace(self, target):
        child = FakeProcess(pid=101, exit_code=0, blocking=True, ignores_sigterm=True)
        supervisor = make_supervisor(target, FakeSpawner(child), grace_period=0.01)

        run = asyncio.create_task(supervisor.run())
        await wait_for_state(supervisor, SupervisorState.RUNNING)
        supervisor.request_shutdown(signal.SIGINT)

        assert await run == 0
        assert child.signals == [signal.SIGINT]
        assert child.killed is True

    @pytest.mark.asyncio
    async def test_shutdown_interrupts_restart_delay(self, target):
        spawner = FakeSpawner(FakeProcess(pid=101, exit_code=1))
        supervisor = make_supervisor(target, spawner, restart_delay=60)

        run = asyncio.create_task(supervisor.run())
        await wait_for_state(supervisor, SupervisorState.RESTARTING)
        supervisor.request_shutdown()

        assert await asyncio.wait_for(run, timeout=5) == 0
        assert len(spawner.calls) == 1

    def test_request_shutdown_is_idempotent(self, target):
        supervisor = make_supervisor(target, FakeSpawner())

        supervisor.request_shutdown()
        supervisor.request_shutdown()

        assert supervisor.state == SupervisorState.SHUTTING_DOWN


class TestPidFile:
    """Tests for PID file management."""

    def test_write_read_remove(self, tmp_path):
        pidfile = PidFile(tmp_path / "run" / "service.pid")

        assert pidfile.read() is None
        assert pidfile.write(4242) == 4242
        assert pidfile.read() == 4242
        assert pidfile.remove() is True
        assert pidfile.remove() is False

    def test_corrupt_file_reads_as_missing(self, tmp_path):
        path = tmp_path / "service.pid"
        path.write_text("not-a-pid")

        assert PidFile(path).read() is None

    def test_current_process_is_running(self):
        assert PidFile.is_process_running(os.getpid()) is True
        assert PidFile.is_process_running(None) is False

    def test_cleanup_kills_live_stale_process(self, tmp_path, monkeypatch):
        killed = []
        monkeypatch.setattr(PidFile, "is_process_running", staticmethod(lambda pid: True))
        monkeypatch.setattr(PidFile, "kill", staticmethod(lambda pid: killed.append(pid)))
        pidfile = PidFile(tmp_path / "service.pid")
        pidfile.write(4242)

        assert pidfile.cleanup() == 4242

        assert killed == [4242]
        assert not pidfile.path.exists()

    def test_cleanup_never_kills_itself(self, tmp_path, monkeypatch):
        killed = []
        monkeypatch.setattr(PidFile, "kill", staticmethod(lambda pid: killed.append(pid)))
        pidfile = PidFile(tmp_path / "service.pid")
        pidfile.write()

        assert pidfile.cleanup() == os.getpid()
        assert killed == []

    def test_acquire_replaces_dead_record(self, tmp_path, monkeypatch):
        monkeypatch.setattr(PidFile, "is_process_running", staticmethod(lambda pid: False))
        pidfile = PidFile(tmp_path / "service.pid")
        pidfile.write(4242)

        assert pidfile.acquire(5151) == 5151
        assert pidfile.read() == 5151


class TestCli:
    """Tests for the supervisor CLI."""

    @pytest.fixture
    def runner(self) -> CliRunner:
        return CliRunner()

    def test_status_without_pid_file(self, runner, tmp_path):
        result = runner.invoke(app, ["status", "--pid-file", str(tmp_path / "none.pid")])

        assert result.exit_code == 1
        assert "No PID file found" in result.output

    def test_status_json_for_live_process(self, runner, tmp_path):
        path = tmp_path / "service.pid"
        PidFile(path).write()

        result = runner.invoke(app, ["status", "--pid-file", str(path), "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload == {"pid": os.getpid(), "running": True, "pid_file": str(path)}

    def test_cleanup_without_pid_file(self, runner, tmp_path):
        result = runner.invoke(app, ["cleanup", "--pid-file", str(tmp_path / "none.pid")])

        assert result.exit_code == 0
        assert "cleanup not needed" in result.output

    def test_start_with_missing_target_fails(self, runner, tmp_path):
        path = tmp_path / "service.pid"

        result = runner.invoke(
            app,
            ["start", "--target", str(tmp_path / "missing.py"), "--pid-file", str(path)],
        )

        assert result.exit_code == 1
        assert not path.exists()
