"""Owned record of each destination's last successful reconciliation."""

from pathlib import Path
from typing import Optional

from ..config.loader import ConfigLoader, ConfigurationError
from ..config.schema import BaselineRecord, DestinationConfig, ReconcileMode
from ..utils.logging import get_logger


class BaselineStore:
    """Reads and writes ``baselines/<name>.yaml``.

    A destination is seeded only if its record exists and was written for the
    destination's current local/remote path pair.
    """

    def __init__(self, baselines_dir: Path, loader: Optional[ConfigLoader] = None):
        self.baselines_dir = Path(baselines_dir)
        self.loader = loader or ConfigLoader()
        self.logger = get_logger(self.__class__.__name__)

    def path_for(self, name: str) -> Path:
        return self.baselines_dir / f"{name}.yaml"

    def get(self, name: str) -> Optional[BaselineRecord]:
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            return self.loader.load_model(path, BaselineRecord)
        except ConfigurationError as e:
            self.logger.warning("Ignoring unreadable baseline", destination=name, error=str(e))
            return None

    def has_baseline(self, destination: DestinationConfig) -> bool:
        record = self.get(destination.name)
        return record is not None and record.matches(destination)

    def record(self, destination: DestinationConfig, mode: ReconcileMode) -> BaselineRecord:
        baseline = BaselineRecord(
            local_path=destination.local_path,
            remote_path=destination.remote_path,
            mode=mode,
        )
        self.loader.save_model(baseline, self.path_for(destination.name))
        self.logger.info("Baseline recorded", destination=destination.name, mode=mode.value)
        return baseline

    def clear(self, name: str) -> None:
        self.path_for(name).unlink(missing_ok=True)
