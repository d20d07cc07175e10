"""Tests for the rclone bisync engine adapter and the reconciliation controller."""

import subprocess
from datetime import datetime
from pathlib import Path

import pytest

from cloudsync.config import ReconcileMode
from cloudsync.core import (
    BaselineRequiredError,
    EngineError,
    EngineInvocation,
    InvocationKind,
    RcloneBisyncEngine,
    ReconcileState,
    ReconciliationController,
)
from conftest import FakeRunner


FIXED_TIME = datetime(2026, 1, 2, 3, 4, 5)


@pytest.fixture
def engine(settings, remote, runner):
    return RcloneBisyncEngine(settings, remote, runner=runner, clock=lambda: FIXED_TIME)


@pytest.fixture
def local(tmp_path):
    return tmp_path / "local"


class TestEngineInvocation:
    """Test invocation construction."""

    def test_sync(self, local):
        invocation = EngineInvocation.sync("ableton", str(local), "Music/Ableton")
        assert invocation.kind is InvocationKind.SYNC
        assert invocation.local_path == local
        assert invocation.mode is None

    def test_baseline_requires_mode(self, local):
        with pytest.raises(ValueError):
            EngineInvocation(
                name="ableton",
                local_path=local,
                remote_path="Music/Ableton",
                kind=InvocationKind.ESTABLISH_BASELINE,
            )


class TestCommandBuilding:
    """Test the mapping from invocation to rclone argv."""

    def test_steady_sync(self, engine, local, settings):
        [command] = engine.build_commands(EngineInvocation.sync("ableton", local, "Music/Ableton"))

        assert command[:4] == ["rclone", "bisync", str(local), "opencloud:Music/Ableton"]
        assert "--resync" not in command
        assert command[command.index("--conflict-resolve") + 1] == "newer"
        assert command[command.index("--conflict-loser") + 1] == "num"
        assert "--resilient" in command
        assert f"--log-file={settings.engine_log_file}" in command

    def test_resync_local_mirrors_local_first(self, engine, local):
        mirror, resync = engine.build_commands(
            EngineInvocation.establish_baseline("ableton", local, "Music/Ableton", ReconcileMode.LOCAL)
        )

        assert mirror[:4] == ["rclone", "sync", str(local), "opencloud:Music/Ableton"]
        assert resync[:4] == ["rclone", "bisync", str(local), "opencloud:Music/Ableton"]
        assert "--resync" in resync
        assert resync[resync.index("--resync-mode") + 1] == "path1"
        assert "--backup-dir1" not in resync

    def test_resync_remote_mirrors_remote_first(self, engine, local):
        mirror, resync = engine.build_commands(
            EngineInvocation.establish_baseline("ableton", local, "Music/Ableton", ReconcileMode.REMOTE)
        )

        assert mirror[:4] == ["rclone", "sync", "opencloud:Music/Ableton", str(local)]
        assert resync[resync.index("--resync-mode") + 1] == "path2"

    def test_resync_newer_keeps_backups(self, engine, local, settings):
        [resync] = engine.build_commands(
            EngineInvocation.establish_baseline("ableton", local, "Music/Ableton", ReconcileMode.NEWER)
        )

        assert resync[resync.index("--resync-mode") + 1] == "newer"
        assert resync[resync.index("--backup-dir1") + 1] == str(
            settings.backups_dir / "ableton" / "20260102-030405"
        )
        assert resync[resync.index("--backup-dir2") + 1] == (
            "opencloud:.cloudsync-backups/ableton/20260102-030405"
        )


class TestEngineRun:
    """Test subprocess execution and result mapping."""

    def test_success(self, engine, runner, local):
        result = engine.run(EngineInvocation.sync("ableton", local, "Music/Ableton"))

        assert result.success
        assert result.exit_code == 0
        assert result.error_message is None
        assert len(runner.commands("rclone bisync")) == 1

    def test_stops_at_first_failure(self, settings, remote, local):
        runner = FakeRunner(returncodes={"rclone sync": 7})
        engine = RcloneBisyncEngine(settings, remote, runner=runner)

        result = engine.run(
            EngineInvocation.establish_baseline("ableton", local, "Music/Ableton", ReconcileMode.REMOTE)
        )

        assert not result.success
        assert result.exit_code == 7
        assert "status 7" in result.error_message
        assert runner.commands("rclone bisync") == []

    def test_timeout_is_a_failure(self, settings, remote, local):
        runner = FakeRunner(returncodes={"rclone bisync": subprocess.TimeoutExpired("rclone", 5)})
        engine = RcloneBisyncEngine(settings, remote, runner=runner)

        result = engine.run(EngineInvocation.sync("ableton", local, "Music/Ableton"))

        assert not result.success
        assert result.exit_code is None
        assert "timed out" in result.error_message

    def test_missing_binary(self, settings, remote, local):
        runner = FakeRunner(returncodes={"rclone": FileNotFoundError("rclone")})
        engine = RcloneBisyncEngine(settings, remote, runner=runner)

        with pytest.raises(EngineError):
            engine.run(EngineInvocation.sync("ableton", local, "Music/Ableton"))

    def test_timeout_setting_is_passed(self, settings, remote, local):
        settings.sync.engine_timeout_seconds = 900
        runner = FakeRunner()
        RcloneBisyncEngine(settings, remote, runner=runner).run(
            EngineInvocation.sync("ableton", local, "Music/Ableton")
        )

        assert runner.call_kwargs[0]["timeout"] == 900


class TestReconciliationController:
    """Test baseline lifecycle and failure accounting."""

    @pytest.fixture
    def destination(self, components, local_dir):
        return components.registry.add_or_update("ableton", str(local_dir), "Music/Ableton")

    def test_unseeded_sync_is_refused(self, components, destination, runner):
        assert components.controller.state(destination) is ReconcileState.UNSEEDED

        with pytest.raises(BaselineRequiredError) as excinfo:
            components.controller.sync(destination)

        assert "cloudsync resync ableton" in str(excinfo.value)
        assert runner.calls == []
        assert components.failures.get("ableton") == 0

    def test_resync_establishes_baseline(self, components, destination):
        components.failures.record_failure("ableton")

        result = components.controller.resync(destination, ReconcileMode.LOCAL)

        assert result.success
        assert components.controller.state(destination) is ReconcileState.STEADY
        assert components.baselines.get("ableton").mode is ReconcileMode.LOCAL
        assert components.failures.get("ableton") == 0

    def test_failed_resync_leaves_destination_unseeded(self, settings, remote, components, destination):
        components.baselines.record(destination, ReconcileMode.NEWER)
        failing = RcloneBisyncEngine(settings, remote, runner=FakeRunner(returncodes={"rclone": 2}))
        controller = ReconciliationController(failing, components.baselines, components.failures)

        result = controller.resync(destination, ReconcileMode.NEWER)

        assert not result.success
        assert controller.state(destination) is ReconcileState.UNSEEDED
        assert components.failures.get("ableton") == 1

    def test_repeated_failures_do_not_resync(self, settings, remote, components, destination):
        components.baselines.record(destination, ReconcileMode.NEWER)
        runner = FakeRunner(returncodes={"rclone bisync": 1})
        engine = RcloneBisyncEngine(settings, remote, runner=runner)
        controller = ReconciliationController(engine, components.baselines, components.failures)

        for _ in range(5):
            assert not controller.sync(destination).success

        assert components.failures.get("ableton") == 5
        assert all("--resync" not in command for command in runner.calls)
        assert controller.state(destination) is ReconcileState.STEADY

    def test_success_resets_failures(self, components, destination):
        components.baselines.record(destination, ReconcileMode.NEWER)
        components.failures.record_failure("ableton")
        components.failures.record_failure("ableton")

        assert components.controller.sync(destination).success
        assert components.failures.get("ableton") == 0

    def test_sync_recreates_missing_local_directory(self, components, destination):
        components.baselines.record(destination, ReconcileMode.NEWER)
        Path(destination.local_path).rmdir()

        components.controller.sync(destination)

        assert Path(destination.local_path).is_dir()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
