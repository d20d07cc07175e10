"""Read-only aggregation of remote, mount and per-destination health."""

from dataclasses import dataclass, field
from typing import List, Optional

from ..config.loader import ConfigurationError
from ..config.manager import DestinationRegistry
from ..config.schema import RemoteConnection
from ..config.settings import AppSettings
from ..core.reconciliation import ReconcileState
from ..remote.mount import MountManager
from ..remote.rclone import RcloneRemote
from ..scheduler.base import ScheduleManager
from ..state import BaselineStore, ExecutionLock, FailureTracker
from ..utils.logging import get_logger


@dataclass
class RemoteStatus:
    name: str
    configured: bool
    url: str = ""
    reachable: Optional[bool] = None


@dataclass
class MountStatus:
    mount_point: str
    cache_size_gb: int
    mounted: bool
    used_bytes: Optional[int] = None
    free_bytes: Optional[int] = None


@dataclass
class DestinationStatus:
    name: str
    local_path: str
    remote_path: str
    running: bool
    state: ReconcileState
    installed: bool
    failure_count: int
    needs_resync: bool

    @property
    def label(self) -> str:
        if self.running:
            return "SYNCING"
        if self.failure_count:
            return "FAILING"
        if self.state is ReconcileState.UNSEEDED:
            return "UNSEEDED"
        return "OK"


@dataclass
class StatusReport:
    remote: RemoteStatus
    mount: MountStatus
    destinations: List[DestinationStatus] = field(default_factory=list)
    log_files: List[str] = field(default_factory=list)


def _human_bytes(value: Optional[int]) -> str:
    if value is None:
        return "?"
    size = float(value)
    for unit in ("B", "K", "M", "G", "T"):
        if size < 1024 or unit == "T":
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}T"


class StatusReporter:
    """Builds a StatusReport without modifying any state."""

    def __init__(
        self,
        settings: AppSettings,
        remote: RemoteConnection,
        registry: DestinationRegistry,
        lock: ExecutionLock,
        failures: FailureTracker,
        baselines: BaselineStore,
        schedule_manager: ScheduleManager,
        remote_client: RcloneRemote,
        mount_manager: MountManager,
    ):
        self.settings = settings
        self.remote = remote
        self.registry = registry
        self.lock = lock
        self.failures = failures
        self.baselines = baselines
        self.schedule_manager = schedule_manager
        self.remote_client = remote_client
        self.mount_manager = mount_manager
        self.logger = get_logger(self.__class__.__name__)

    def collect(self, check_connectivity: bool = True) -> StatusReport:
        configured = self.remote_client.is_configured(self.remote)
        remote_status = RemoteStatus(name=self.remote.name, configured=configured, url=self.remote.url)
        if configured and check_connectivity:
            remote_status.reachable = self.remote_client.check_connectivity(self.remote)

        mounted = self.mount_manager.is_mounted()
        mount_status = MountStatus(
            mount_point=str(self.remote.mount_path),
            cache_size_gb=self.remote.cache_size_gb,
            mounted=mounted,
        )
        if mounted:
            usage = self.mount_manager.disk_usage()
            if usage is not None:
                mount_status.used_bytes = usage.used
                mount_status.free_bytes = usage.free

        destinations = []
        for name in sorted(self.registry.list()):
            status = self.destination_status(name)
            if status is not None:
                destinations.append(status)

        return StatusReport(
            remote=remote_status,
            mount=mount_status,
            destinations=destinations,
            log_files=[
                str(self.settings.logging.resolved_file_path(self.settings.state_path)),
                str(self.settings.engine_log_file),
                str(self.settings.mount_log_file),
            ],
        )

    def destination_status(self, name: str) -> Optional[DestinationStatus]:
        try:
            destination = self.registry.get(name)
        except ConfigurationError as e:
            self.logger.warning("Skipping unreadable destination", destination=name, error=str(e))
            return None

        running = self.lock.is_held(name)
        seeded = self.baselines.has_baseline(destination)
        if seeded:
            state = ReconcileState.STEADY
        elif running:
            state = ReconcileState.RECONCILING
        else:
            state = ReconcileState.UNSEEDED

        failure_count = self.failures.get(name)
        return DestinationStatus(
            name=name,
            local_path=destination.local_path,
            remote_path=destination.remote_path,
            running=running,
            state=state,
            installed=self.schedule_manager.is_installed(name),
            failure_count=failure_count,
            needs_resync=failure_count >= self.settings.sync.failure_threshold,
        )

    def render(self, report: StatusReport) -> str:
        lines = ["cloudsync Status", "================", ""]

        lines += ["Remote Configuration", "--------------------"]
        if report.remote.configured:
            lines.append(f"Remote:      configured ({report.remote.name})")
            if report.remote.url:
                lines.append(f"WebDAV:      {report.remote.url}")
            if report.remote.reachable is not None:
                lines.append(f"Connection:  {'reachable' if report.remote.reachable else 'UNREACHABLE'}")
        else:
            lines.append("Remote:      not configured (run: cloudsync setup)")

        lines += ["", "Mount", "-----"]
        lines.append(f"Mount point: {report.mount.mount_point}")
        lines.append(f"Cache size:  {report.mount.cache_size_gb}GB")
        if report.mount.mounted:
            lines.append("Status:      MOUNTED")
            if report.mount.used_bytes is not None:
                lines.append(
                    f"Disk usage:  {_human_bytes(report.mount.used_bytes)} used / "
                    f"{_human_bytes(report.mount.free_bytes)} available"
                )
        else:
            lines.append("Status:      NOT MOUNTED")

        lines += ["", "Bidirectional Sync", "------------------"]
        if not report.destinations:
            lines.append("Sync:        Not configured (run: cloudsync sync add <name> --local PATH --remote PATH)")
        for dest in report.destinations:
            lines.append(f"[{dest.name}]")
            lines.append(f"  Local:       {dest.local_path}")
            lines.append(f"  Remote:      {report.remote.name}:{dest.remote_path}")
            status_line = f"  Status:      {dest.label}"
            if dest.label == "FAILING":
                status_line += f" ({dest.failure_count} consecutive)"
            elif dest.label == "UNSEEDED":
                status_line += f" (run: cloudsync resync {dest.name} [local|remote|newer])"
            lines.append(status_line)
            lines.append(f"  Schedule:    {'installed' if dest.installed else 'not installed'}")
            if dest.needs_resync:
                lines.append(f"  Recommended: cloudsync resync {dest.name}")

        lines += ["", "Logs", "----"]
        lines += [f"  {path}" for path in report.log_files]
        return "\n".join(lines) + "\n"
