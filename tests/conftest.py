"""Shared fixtures: isolated state directory, fake subprocess runner, fake scheduler."""

import os
import subprocess
from pathlib import Path

import pytest

from cloudsync.config import RemoteConnection, reload_settings
from cloudsync.core import build_components
from cloudsync.scheduler import ScheduleManager
from cloudsync.state import ExecutionLock, LockResult


class FakeRunner:
    """``subprocess.run`` stand-in that records every argv it receives.

    Results are looked up by ``"<program> <first positional arg>"`` (for
    example ``"rclone bisync"`` or ``"systemctl enable"``), then by program
    name. A value may be a return code, a list of return codes consumed in
    order, or an exception instance to raise.
    """

    def __init__(self, returncodes=None, outputs=None, remotes=("opencloud",)):
        self.calls = []
        self.call_kwargs = []
        self.returncodes = dict(returncodes or {})
        self.outputs = dict(outputs or {})
        self.remotes = list(remotes)

    @staticmethod
    def key(command):
        program = Path(command[0]).name
        for arg in command[1:]:
            if not arg.startswith("-"):
                return f"{program} {arg}"
        return program

    def _lookup(self, table, command, default):
        key = self.key(command)
        program = Path(command[0]).name
        if key in table:
            return table[key]
        return table.get(program, default)

    def __call__(self, command, **kwargs):
        self.calls.append(list(command))
        self.call_kwargs.append(kwargs)

        outcome = self._lookup(self.returncodes, command, 0)
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, BaseException):
            raise outcome

        if self.key(command) == "rclone listremotes":
            stdout = "".join(f"{name}:\n" for name in self.remotes)
        else:
            stdout = self._lookup(self.outputs, command, "")
        return subprocess.CompletedProcess(command, outcome, stdout=stdout, stderr="")

    def commands(self, key):
        """Recorded calls whose lookup key matches ``key``."""
        return [c for c in self.calls if self.key(c) == key]


class FakeScheduleManager(ScheduleManager):
    """In-memory schedule manager."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.installed = {}
        self.install_calls = 0

    def job_id(self, name):
        return f"test.cloudsync.{name}"

    def install(self, name):
        self.install_calls += 1
        self.installed[name] = self.job_id(name)

    def uninstall(self, name):
        return self.installed.pop(name, None) is not None

    def is_installed(self, name):
        return name in self.installed

    def installed_names(self):
        return sorted(self.installed)


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Settings rooted in a temporary state directory."""
    monkeypatch.setenv("CLOUDSYNC_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.delenv("CLOUDSYNC_LOG_FILE_PATH", raising=False)
    monkeypatch.delenv("CLOUDSYNC_SCHEDULER_BACKEND", raising=False)
    return reload_settings()


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def schedule_manager():
    return FakeScheduleManager()


@pytest.fixture
def remote(tmp_path):
    return RemoteConnection(
        name="opencloud",
        url="https://cloud.example.com/remote.php/webdav/",
        username="alice",
        mount_point=str(tmp_path / "mount"),
    )


@pytest.fixture
def components(settings, runner, schedule_manager, remote):
    return build_components(settings, runner=runner, schedule_manager=schedule_manager, remote=remote)


@pytest.fixture
def local_dir(tmp_path):
    return tmp_path / "Music" / "Ableton"


class OtherRun:
    """A concurrent sync run holding destination locks on the same run directory."""

    def __init__(self, run_dir):
        self.lock = ExecutionLock(run_dir, pid=os.getpid())
        self.names = []

    def hold(self, name):
        assert self.lock.try_acquire(name) is LockResult.ACQUIRED
        self.names.append(name)

    def finish(self):
        for name in self.names:
            self.lock.release(name)
        self.names = []


@pytest.fixture
def other_run(settings):
    run = OtherRun(settings.run_dir)
    yield run
    run.finish()
