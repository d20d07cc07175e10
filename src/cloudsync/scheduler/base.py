"""Schedule manager interface for OS-level periodic triggers."""

import subprocess
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..config.settings import AppSettings, get_settings
from ..utils.logging import get_logger


Runner = Callable[..., subprocess.CompletedProcess]


class SchedulerError(Exception):
    """Raised when a periodic trigger cannot be registered or removed."""
    pass


def default_sync_command(name: str) -> List[str]:
    """Command the periodic trigger executes for one destination."""
    return [sys.executable, "-m", "cloudsync", "sync", name]


def trigger_environment(settings: AppSettings) -> Dict[str, str]:
    """Variables a triggered run needs to see the same state and rclone binary."""
    return {
        "CLOUDSYNC_STATE_DIR": str(settings.state_path.resolve()),
        "CLOUDSYNC_RCLONE_PATH": settings.rclone_path,
    }


class ScheduleManager(ABC):
    """Registers one periodic ``sync <name>`` trigger per destination.

    ``install`` replaces an existing registration with the same identifier;
    ``uninstall`` of a missing registration is a no-op.
    """

    def __init__(
        self,
        interval_seconds: int = 60,
        runner: Optional[Runner] = None,
        command_factory: Callable[[str], List[str]] = default_sync_command,
        log_dir: Optional[Path] = None,
        environment: Optional[Dict[str, str]] = None,
    ):
        self.interval_seconds = interval_seconds
        self.runner = runner or subprocess.run
        self.command_factory = command_factory
        self.log_dir = Path(log_dir) if log_dir else None
        if environment is None:
            environment = trigger_environment(get_settings())
        self.environment = dict(environment)
        self.logger = get_logger(self.__class__.__name__)

    @abstractmethod
    def job_id(self, name: str) -> str:
        """Well-known identifier derived from the destination name."""
        pass

    @abstractmethod
    def install(self, name: str) -> None:
        pass

    @abstractmethod
    def uninstall(self, name: str) -> bool:
        """Remove the trigger. Returns True if one existed."""
        pass

    @abstractmethod
    def is_installed(self, name: str) -> bool:
        pass

    def installed_names(self) -> List[str]:
        return []

    def _run(self, command: List[str], check: bool = True) -> subprocess.CompletedProcess:
        try:
            completed = self.runner(command, check=False, capture_output=True, text=True)
        except FileNotFoundError:
            raise SchedulerError(f"Command not found: {command[0]}")
        if check and completed.returncode != 0:
            raise SchedulerError(
                f"{' '.join(command)} failed ({completed.returncode}): "
                f"{(completed.stderr or '').strip()}"
            )
        return completed
