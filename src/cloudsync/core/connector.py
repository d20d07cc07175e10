"""Main orchestrator: one invocation, one command, one destination at a time."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .engine import RcloneBisyncEngine, Runner
from .reconciliation import BaselineRequiredError, ReconcileState, ReconciliationController
from ..config.loader import ConfigLoader, ConfigurationError
from ..config.manager import DestinationRegistry, validate_name
from ..config.schema import ReconcileMode, RemoteConnection
from ..config.settings import AppSettings
from ..remote.rclone import ConnectivityError, RcloneRemote
from ..scheduler.base import ScheduleManager
from ..scheduler.factory import ScheduleManagerFactory
from ..state import BaselineStore, ExecutionLock, FailureTracker, LockResult
from ..utils.logging import get_logger


class RunOutcome(str, Enum):
    """What happened to one destination during an invocation."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"
    ERROR = "error"


class SyncOrchestrator:
    """Loads a destination, takes its lock, delegates to the engine, reports."""

    def __init__(
        self,
        settings: AppSettings,
        remote: RemoteConnection,
        registry: DestinationRegistry,
        lock: ExecutionLock,
        controller: ReconciliationController,
        schedule_manager: ScheduleManager,
        remote_client: RcloneRemote,
    ):
        self.settings = settings
        self.remote = remote
        self.registry = registry
        self.lock = lock
        self.controller = controller
        self.schedule_manager = schedule_manager
        self.remote_client = remote_client
        self.logger = get_logger(self.__class__.__name__)

    def sync(self, name: str) -> RunOutcome:
        """Incremental sync of one destination.

        Raises:
            ConfigurationError: Unknown destination, remote not configured, no baseline
            ConnectivityError: Remote unreachable
        """
        destination = self.registry.get(name)
        self.remote_client.require_configured(self.remote)

        with self.lock.hold(name) as acquired:
            if acquired is LockResult.BUSY:
                return RunOutcome.SKIPPED

            if self.controller.state(destination) is ReconcileState.UNSEEDED:
                raise BaselineRequiredError(name)

            self.remote_client.ensure_reachable(self.remote)
            result = self.controller.sync(destination)

        return RunOutcome.SUCCESS if result.success else RunOutcome.FAILED

    def sync_all(self) -> Dict[str, RunOutcome]:
        """Sync every destination; one destination's error never stops the others."""
        outcomes: Dict[str, RunOutcome] = {}

        for name in self.registry.list():
            try:
                outcomes[name] = self.sync(name)
            except (ConfigurationError, ConnectivityError) as e:
                self.logger.error("Sync not run", destination=name, error=str(e))
                outcomes[name] = RunOutcome.ERROR

        if not outcomes:
            self.logger.warning("No sync destinations configured. Add one with: cloudsync sync add")
        return outcomes

    def resync(self, name: str, mode: ReconcileMode = ReconcileMode.NEWER) -> RunOutcome:
        """Explicit reconciliation; the only way to (re)establish a baseline."""
        destination = self.registry.get(name)
        self.remote_client.require_configured(self.remote)

        with self.lock.hold(name) as acquired:
            if acquired is LockResult.BUSY:
                self.logger.warning("Resync postponed, a sync is in progress", destination=name)
                return RunOutcome.SKIPPED

            self.remote_client.ensure_reachable(self.remote)
            result = self.controller.resync(destination, mode)

        return RunOutcome.SUCCESS if result.success else RunOutcome.FAILED

    def install(self, name: str, mode: Optional[ReconcileMode] = None) -> RunOutcome:
        """Register the periodic trigger, seeding the destination first if needed.

        Raises:
            BaselineRequiredError: If the destination is unseeded and no mode was chosen
        """
        destination = self.registry.get(name)

        if mode is None and self.controller.state(destination) is ReconcileState.UNSEEDED:
            raise BaselineRequiredError(name)

        if mode is not None:
            outcome = self.resync(name, mode)
            if outcome is not RunOutcome.SUCCESS:
                self.logger.error("Sync service not installed, resync did not complete", destination=name)
                return outcome

        self.schedule_manager.install(name)
        self.logger.info(
            f"Sync will run every {self.schedule_manager.interval_seconds} seconds and at login",
            destination=name,
        )
        return RunOutcome.SUCCESS

    def uninstall(self, name: str) -> bool:
        validate_name(name)
        return self.schedule_manager.uninstall(name)


@dataclass
class Components:
    """Everything one invocation needs, built from settings."""

    settings: AppSettings
    remote: RemoteConnection
    remote_saved: bool
    lock: ExecutionLock
    failures: FailureTracker
    baselines: BaselineStore
    schedule_manager: ScheduleManager
    registry: DestinationRegistry
    remote_client: RcloneRemote
    engine: RcloneBisyncEngine
    controller: ReconciliationController
    orchestrator: SyncOrchestrator


def build_components(
    settings: AppSettings,
    runner: Optional[Runner] = None,
    schedule_manager: Optional[ScheduleManager] = None,
    remote: Optional[RemoteConnection] = None,
) -> Components:
    """Wire every component with the same settings and remote connection."""
    loader = ConfigLoader()
    stored_remote = remote or loader.load_remote(settings.remote_file)
    resolved_remote = stored_remote or RemoteConnection(name=settings.remote.default_name)

    lock = ExecutionLock(settings.run_dir)
    failures = FailureTracker(settings.run_dir)
    baselines = BaselineStore(settings.baselines_dir, loader)
    if schedule_manager is None:
        schedule_kwargs = {"runner": runner} if runner else {}
        schedule_manager = ScheduleManagerFactory.create(settings, **schedule_kwargs)

    registry = DestinationRegistry(
        settings.destinations_dir, schedule_manager, lock, failures, baselines, loader,
        backup_root=settings.sync.backup_root,
    )
    remote_client = RcloneRemote(settings, runner=runner)
    engine = RcloneBisyncEngine(settings, resolved_remote, runner=runner)
    controller = ReconciliationController(engine, baselines, failures)
    orchestrator = SyncOrchestrator(
        settings, resolved_remote, registry, lock, controller, schedule_manager, remote_client
    )

    return Components(
        settings=settings,
        remote=resolved_remote,
        remote_saved=stored_remote is not None,
        lock=lock,
        failures=failures,
        baselines=baselines,
        schedule_manager=schedule_manager,
        registry=registry,
        remote_client=remote_client,
        engine=engine,
        controller=controller,
        orchestrator=orchestrator,
    )
