"""Remote package: rclone remote setup, connectivity and browse mount."""

from .rclone import RcloneRemote, ConnectivityError
from .mount import MountManager, MountError, is_mounted

__all__ = [
    "RcloneRemote",
    "ConnectivityError",
    "MountManager",
    "MountError",
    "is_mounted"
]
