"""Per-destination runtime state: locks, failure streaks and baselines."""

from .lock import ExecutionLock, LockResult, is_process_alive
from .failures import FailureTracker
from .baseline import BaselineStore

__all__ = [
    "ExecutionLock",
    "LockResult",
    "is_process_alive",
    "FailureTracker",
    "BaselineStore"
]
