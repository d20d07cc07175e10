"""Status reporting package."""

from .reporter import StatusReporter, StatusReport, DestinationStatus, RemoteStatus, MountStatus

__all__ = [
    "StatusReporter",
    "StatusReport",
    "DestinationStatus",
    "RemoteStatus",
    "MountStatus"
]
