"""Synchronization engine adapter around ``rclone bisync``.

The orchestrator never builds shell strings. It hands the adapter an
``EngineInvocation`` and gets an ``EngineResult`` back; the mapping from
reconciliation mode to engine flags lives only in this module.
"""

import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from ..config.loader import ConfigurationError
from ..config.schema import ReconcileMode, RemoteConnection
from ..config.settings import AppSettings
from ..utils.logging import get_logger, log_execution_time


Runner = Callable[..., subprocess.CompletedProcess]

# Flags shared by every bisync call
COMMON_BISYNC_FLAGS = [
    "--create-empty-src-dirs",
    "--compare", "size,modtime",
    "--slow-hash-sync-only",
    "--resilient",
]

# Steady-state conflicts: newer wins, loser kept as a numbered copy
STEADY_CONFLICT_FLAGS = [
    "--conflict-resolve", "newer",
    "--conflict-loser", "num",
]

RESYNC_MODE_FLAGS = {
    ReconcileMode.LOCAL: "path1",
    ReconcileMode.REMOTE: "path2",
    ReconcileMode.NEWER: "newer",
}


class EngineError(ConfigurationError):
    """Raised when the engine cannot be started at all."""
    pass


class InvocationKind(str, Enum):
    """Incremental sync or establishing a fresh baseline."""
    SYNC = "sync"
    ESTABLISH_BASELINE = "establish_baseline"


@dataclass(frozen=True)
class EngineInvocation:
    """Typed description of one engine run."""

    name: str
    local_path: Path
    remote_path: str
    kind: InvocationKind = InvocationKind.SYNC
    mode: Optional[ReconcileMode] = None

    @classmethod
    def sync(cls, name: str, local_path: Path, remote_path: str) -> "EngineInvocation":
        return cls(name=name, local_path=Path(local_path), remote_path=remote_path)

    @classmethod
    def establish_baseline(
        cls, name: str, local_path: Path, remote_path: str, mode: ReconcileMode
    ) -> "EngineInvocation":
        return cls(
            name=name,
            local_path=Path(local_path),
            remote_path=remote_path,
            kind=InvocationKind.ESTABLISH_BASELINE,
            mode=mode,
        )

    def __post_init__(self):
        if self.kind is InvocationKind.ESTABLISH_BASELINE and self.mode is None:
            raise ValueError("Establishing a baseline requires a reconciliation mode")


@dataclass
class EngineResult:
    """Result of an engine run."""

    invocation: EngineInvocation
    success: bool
    exit_code: Optional[int]
    commands: List[List[str]] = field(default_factory=list)
    duration: float = 0.0
    error_message: Optional[str] = None


class RcloneBisyncEngine:
    """Runs rclone as an opaque subprocess and reports success or failure."""

    def __init__(
        self,
        settings: AppSettings,
        remote: RemoteConnection,
        runner: Optional[Runner] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the engine adapter.

        Args:
            settings: Application settings (binary path, timeouts, log paths)
            remote: Shared remote the remote paths are relative to
            runner: ``subprocess.run`` compatible callable
            clock: Source of timestamps for backup directory names
        """
        self.settings = settings
        self.remote = remote
        self.runner = runner or subprocess.run
        self.clock = clock
        self.logger = get_logger(self.__class__.__name__)

    def build_commands(self, invocation: EngineInvocation) -> List[List[str]]:
        """Translate an invocation into the argv lists to execute, in order."""
        rclone = self.settings.rclone_path
        local = str(invocation.local_path)
        remote = self.remote.spec(invocation.remote_path)
        log_flags = ["-v", f"--log-file={self.settings.engine_log_file}"]

        if invocation.kind is InvocationKind.SYNC:
            return [[
                rclone, "bisync", local, remote,
                *COMMON_BISYNC_FLAGS,
                *STEADY_CONFLICT_FLAGS,
                *log_flags,
            ]]

        mode = invocation.mode
        commands: List[List[str]] = []

        # bisync --resync only unions the two trees, so an authoritative side
        # is mirrored first to make the other side match it exactly.
        if mode is ReconcileMode.LOCAL:
            commands.append([rclone, "sync", local, remote, "--create-empty-src-dirs", *log_flags])
        elif mode is ReconcileMode.REMOTE:
            commands.append([rclone, "sync", remote, local, "--create-empty-src-dirs", *log_flags])

        resync = [
            rclone, "bisync", local, remote,
            "--resync",
            "--resync-mode", RESYNC_MODE_FLAGS[mode],
            *COMMON_BISYNC_FLAGS,
        ]
        if mode is ReconcileMode.NEWER:
            local_backup, remote_backup = self.backup_dirs(invocation.name)
            resync += [
                "--backup-dir1", str(local_backup),
                "--backup-dir2", self.remote.spec(remote_backup),
            ]
        commands.append(resync + log_flags)
        return commands

    def backup_dirs(self, name: str):
        """Local and remote directories receiving superseded files."""
        stamp = self.clock().strftime("%Y%m%d-%H%M%S")
        local_backup = self.settings.backups_dir / name / stamp
        remote_backup = f"{self.settings.sync.backup_root}/{name}/{stamp}"
        return local_backup, remote_backup

    @log_execution_time
    def run(self, invocation: EngineInvocation) -> EngineResult:
        """Execute the invocation. Stops at the first failing command.

        Raises:
            EngineError: If the engine binary cannot be executed
        """
        commands = self.build_commands(invocation)
        self.settings.logs_dir.mkdir(parents=True, exist_ok=True)
        result = EngineResult(invocation=invocation, success=False, exit_code=None, commands=commands)
        start_time = time.monotonic()

        for command in commands:
            self.logger.debug("Running engine", command=" ".join(command))
            try:
                completed = self.runner(
                    command,
                    check=False,
                    timeout=self.settings.sync.engine_timeout_seconds,
                )
            except FileNotFoundError:
                raise EngineError(
                    f"rclone is not installed or not executable: {self.settings.rclone_path}"
                )
            except subprocess.TimeoutExpired:
                result.error_message = (
                    f"Engine timed out after {self.settings.sync.engine_timeout_seconds}s"
                )
                break

            result.exit_code = completed.returncode
            if completed.returncode != 0:
                result.error_message = (
                    f"rclone {command[1]} exited with status {completed.returncode}"
                )
                break
        else:
            result.success = True

        result.duration = time.monotonic() - start_time
        return result
