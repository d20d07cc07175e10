"""Consecutive-failure counter per destination."""

from pathlib import Path

from ..config.loader import write_atomic
from ..utils.logging import get_logger


class FailureTracker:
    """Counts failed runs since the last success.

    No record means zero. A success deletes the record instead of writing 0.
    """

    def __init__(self, run_dir: Path):
        self.run_dir = Path(run_dir)
        self.logger = get_logger(self.__class__.__name__)

    def path_for(self, name: str) -> Path:
        return self.run_dir / f"{name}.failures"

    def get(self, name: str) -> int:
        path = self.path_for(name)
        try:
            count = int(path.read_text().strip())
        except FileNotFoundError:
            return 0
        except ValueError:
            self.logger.warning("Unreadable failure record, treating as 1", destination=name)
            return 1
        return max(count, 0)

    def record_failure(self, name: str) -> int:
        count = self.get(name) + 1
        write_atomic(self.path_for(name), f"{count}\n")
        self.logger.debug("Failure recorded", destination=name, consecutive=count)
        return count

    def record_success(self, name: str) -> None:
        self.path_for(name).unlink(missing_ok=True)

    def clear(self, name: str) -> None:
        self.record_success(name)
