"""Destination registry: persisted, validated sync destination definitions."""

from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from pydantic import ValidationError

from .loader import ConfigLoader, ConfigurationError, InvalidNameError, NotFoundError
from .schema import NAME_PATTERN, RESERVED_NAMES, DestinationConfig
from ..scheduler.base import ScheduleManager
from ..state import BaselineStore, ExecutionLock, FailureTracker
from ..utils.logging import get_logger, log_execution_time


def validate_name(name: str) -> str:
    """Check a destination name against the allowed character set.

    Raises:
        InvalidNameError: If the name is empty, has other characters or is reserved
    """
    if not name or not NAME_PATTERN.match(name):
        raise InvalidNameError(
            f"Invalid destination name '{name}': use letters, digits, '-' and '_' only"
        )
    if name in RESERVED_NAMES:
        raise InvalidNameError(f"'{name}' is reserved and cannot be a destination name")
    return name


class DestinationNames:
    """Lazy view over registered names; every iteration rescans the directory."""

    def __init__(self, destinations_dir: Path):
        self.destinations_dir = destinations_dir

    def __iter__(self) -> Iterator[str]:
        if not self.destinations_dir.exists():
            return
        for path in self.destinations_dir.glob("*.yaml"):
            if NAME_PATTERN.match(path.stem):
                yield path.stem


class DestinationRegistry:
    """Owns destination records and cascades their removal to subordinate state."""

    def __init__(
        self,
        destinations_dir: Path,
        schedule_manager: ScheduleManager,
        lock: ExecutionLock,
        failures: FailureTracker,
        baselines: BaselineStore,
        loader: Optional[ConfigLoader] = None,
        backup_root: str = ".cloudsync-backups",
    ):
        self.destinations_dir = Path(destinations_dir)
        self.backup_root = backup_root
        self.schedule_manager = schedule_manager
        self.lock = lock
        self.failures = failures
        self.baselines = baselines
        self.loader = loader or ConfigLoader()
        self.logger = get_logger(self.__class__.__name__)

    def path_for(self, name: str) -> Path:
        return self.destinations_dir / f"{name}.yaml"

    def exists(self, name: str) -> bool:
        return self.path_for(validate_name(name)).exists()

    @log_execution_time
    def add_or_update(
        self,
        name: str,
        local_path: Optional[str] = None,
        remote_path: Optional[str] = None,
    ) -> DestinationConfig:
        """Create a destination or update the fields supplied.

        Unsupplied fields keep their existing values. The local directory is
        created if missing. Changing either path drops the baseline, since it
        described a different pair.

        Raises:
            InvalidNameError: If the name is not allowed
            ConfigurationError: If a new destination lacks a path or a path is invalid
        """
        validate_name(name)
        existing = self.get(name) if self.exists(name) else None

        if existing is None and (not local_path or not remote_path):
            raise ConfigurationError(
                f"New destination '{name}' needs both a local path and a remote path"
            )

        try:
            destination = DestinationConfig(
                name=name,
                local_path=local_path or existing.local_path,
                remote_path=remote_path or existing.remote_path,
                created_at=existing.created_at if existing else datetime.now(),
                updated_at=datetime.now(),
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid destination '{name}': {e}")

        remote = destination.remote_path
        if remote == self.backup_root or remote.startswith(f"{self.backup_root}/"):
            raise ConfigurationError(
                f"Remote path '{remote}' is inside the backup folder '{self.backup_root}'"
            )

        destination.local.mkdir(parents=True, exist_ok=True)
        self.loader.save_model(destination, self.path_for(name))

        if existing is not None and (
            existing.local_path != destination.local_path
            or existing.remote_path != destination.remote_path
        ):
            self.baselines.clear(name)
            self.logger.warning(
                "Destination paths changed, a resync is required",
                destination=name,
            )

        self.logger.info(
            "Destination saved" if existing else "Destination added",
            destination=name,
            local=destination.local_path,
            remote=destination.remote_path,
        )
        return destination

    def get(self, name: str) -> DestinationConfig:
        """Load one destination.

        Raises:
            InvalidNameError: If the name is not allowed
            NotFoundError: If no destination has this name
        """
        path = self.path_for(validate_name(name))
        if not path.exists():
            raise NotFoundError(f"Unknown destination: {name}")
        return self.loader.load_model(path, DestinationConfig)

    def list(self) -> DestinationNames:
        """All registered names, in no particular order."""
        return DestinationNames(self.destinations_dir)

    def remove(self, name: str) -> None:
        """Delete a destination and everything keyed by its name.

        Raises:
            NotFoundError: If no destination has this name
        """
        path = self.path_for(validate_name(name))
        if not path.exists():
            raise NotFoundError(f"Unknown destination: {name}")

        self.schedule_manager.uninstall(name)
        self.lock.release(name)
        self.failures.clear(name)
        self.baselines.clear(name)
        path.unlink()

        self.logger.info("Destination removed", destination=name)
