"""Shared remote management through the rclone CLI."""

import subprocess
from typing import Callable, List, Optional

from ..config.loader import RemoteNotConfiguredError
from ..config.schema import RemoteConnection
from ..config.settings import AppSettings
from ..utils.logging import get_logger


Runner = Callable[..., subprocess.CompletedProcess]


class ConnectivityError(Exception):
    """Raised when the remote cannot be reached or listed."""
    pass


class RcloneRemote:
    """Creates the engine remote and checks that it answers."""

    def __init__(self, settings: AppSettings, runner: Optional[Runner] = None):
        self.settings = settings
        self.runner = runner or subprocess.run
        self.logger = get_logger(self.__class__.__name__)

    def _rclone(self, *args: str, timeout: Optional[int] = None) -> subprocess.CompletedProcess:
        command = [self.settings.rclone_path, *args]
        try:
            return self.runner(command, check=False, capture_output=True, text=True, timeout=timeout)
        except FileNotFoundError:
            raise RemoteNotConfiguredError(
                "rclone is not installed. Install it with:\n"
                "  brew install rclone    # macOS\n"
                "  sudo apt install rclone  # Ubuntu/Debian"
            )

    def list_remotes(self) -> List[str]:
        completed = self._rclone("listremotes")
        if completed.returncode != 0:
            return []
        return [line.strip().rstrip(":") for line in completed.stdout.splitlines() if line.strip()]

    def is_configured(self, remote: Optional[RemoteConnection]) -> bool:
        return remote is not None and remote.name in self.list_remotes()

    def require_configured(self, remote: Optional[RemoteConnection]) -> RemoteConnection:
        """Return the remote if the engine knows it.

        Raises:
            RemoteNotConfiguredError: If ``setup`` has not been run
        """
        if not self.is_configured(remote):
            name = remote.name if remote else self.settings.remote.default_name
            raise RemoteNotConfiguredError(
                f"Remote '{name}' not configured. Run: cloudsync setup"
            )
        return remote

    def check_connectivity(self, remote: RemoteConnection) -> bool:
        """List the remote root without transferring files."""
        try:
            completed = self._rclone(
                "lsd", remote.spec(), "--max-depth", "1",
                timeout=self.settings.remote.connect_timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            self.logger.warning("Connection check timed out", remote=remote.name)
            return False
        return completed.returncode == 0

    def ensure_reachable(self, remote: RemoteConnection) -> None:
        """Raises:
            ConnectivityError: If the remote does not answer
        """
        if not self.check_connectivity(remote):
            raise ConnectivityError(f"Cannot reach remote '{remote.name}' at {remote.url or 'unknown URL'}")

    def configure(self, remote: RemoteConnection, password: str) -> None:
        """Create or update the WebDAV remote with an obscured password."""
        obscured = self._rclone("obscure", password)
        if obscured.returncode != 0:
            raise RemoteNotConfiguredError("rclone could not obscure the password")

        completed = self._rclone(
            "config", "create", remote.name, "webdav",
            f"url={remote.url}",
            f"vendor={remote.vendor}",
            f"user={remote.username}",
            f"pass={obscured.stdout.strip()}",
        )
        if completed.returncode != 0:
            raise RemoteNotConfiguredError(
                f"rclone config create failed: {(completed.stderr or '').strip()}"
            )
        self.logger.info("Remote configured successfully", remote=remote.name, url=remote.url)
