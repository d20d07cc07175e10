"""Read-only browse mount of the shared remote."""

import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, Optional

import psutil

from ..config.schema import RemoteConnection
from ..config.settings import AppSettings
from ..utils.logging import get_logger
from .rclone import ConnectivityError, Runner


class MountError(Exception):
    """Raised when the mount could not be established or removed."""
    pass


def is_mounted(mount_point: Path) -> bool:
    target = str(Path(mount_point).expanduser())
    return any(p.mountpoint == target for p in psutil.disk_partitions(all=True))


class MountManager:
    """Mounts the remote with rclone's VFS cache and unmounts it again."""

    def __init__(
        self,
        settings: AppSettings,
        remote: RemoteConnection,
        runner: Optional[Runner] = None,
        sleep: Callable[[float], None] = time.sleep,
        mount_check: Callable[[Path], bool] = is_mounted,
        platform: str = sys.platform,
    ):
        self.settings = settings
        self.remote = remote
        self.runner = runner or subprocess.run
        self.sleep = sleep
        self.mount_check = mount_check
        self.platform = platform
        self.logger = get_logger(self.__class__.__name__)

    @property
    def mount_point(self) -> Path:
        return self.remote.mount_path

    def is_mounted(self) -> bool:
        return self.mount_check(self.mount_point)

    def build_mount_command(self) -> list:
        return [
            self.settings.rclone_path, "mount", self.remote.spec(), str(self.mount_point),
            "--vfs-cache-mode", "full",
            "--vfs-cache-max-age", "24h",
            "--vfs-cache-max-size", f"{self.remote.cache_size_gb}G",
            "--vfs-read-chunk-size", "64M",
            "--vfs-read-chunk-size-limit", "512M",
            "--buffer-size", "64M",
            "--dir-cache-time", "5m",
            "--poll-interval", "15s",
            "--daemon",
            f"--log-file={self.settings.mount_log_file}",
            "--log-level", "INFO",
        ]

    def mount(self) -> bool:
        """Mount the remote. Returns False if it was already mounted.

        Raises:
            MountError: If the mount did not appear
        """
        self.mount_point.mkdir(parents=True, exist_ok=True)
        if self.is_mounted():
            self.logger.info("Already mounted", mount_point=str(self.mount_point))
            return False

        self.settings.logs_dir.mkdir(parents=True, exist_ok=True)
        self.logger.info("Mounting remote", remote=self.remote.name, mount_point=str(self.mount_point))
        completed = self.runner(self.build_mount_command(), check=False)
        if completed.returncode != 0:
            raise ConnectivityError(
                f"rclone mount exited with status {completed.returncode}. "
                f"Check {self.settings.mount_log_file} for details"
            )

        self.sleep(2)
        if not self.is_mounted():
            raise MountError(f"Mount failed. Check {self.settings.mount_log_file} for details")

        self.logger.info("Successfully mounted", mount_point=str(self.mount_point))
        return True

    def unmount(self) -> bool:
        """Unmount. Returns False if nothing was mounted."""
        if not self.is_mounted():
            self.logger.info("Not currently mounted")
            return False

        target = str(self.mount_point)
        if self.platform == "darwin":
            attempts = [["umount", target], ["diskutil", "unmount", target]]
        else:
            attempts = [["fusermount", "-u", target], ["umount", target]]

        for command in attempts:
            try:
                if self.runner(command, check=False, capture_output=True).returncode == 0:
                    self.logger.info("Unmounted successfully", mount_point=target)
                    return True
            except FileNotFoundError:
                continue

        raise MountError(f"Could not unmount {target}")

    def disk_usage(self):
        """psutil usage tuple for the mount point, or None."""
        try:
            return psutil.disk_usage(str(self.mount_point))
        except OSError:
            return None
