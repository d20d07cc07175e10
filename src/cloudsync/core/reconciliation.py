"""Reconciliation controller: chooses between incremental sync and resync."""

from enum import Enum

from .engine import EngineInvocation, EngineResult, RcloneBisyncEngine
from ..config.loader import ConfigurationError
from ..config.schema import DestinationConfig, ReconcileMode
from ..state import BaselineStore, FailureTracker
from ..utils.logging import get_logger


class ReconcileState(str, Enum):
    """Lifecycle of a destination's baseline."""
    UNSEEDED = "unseeded"
    STEADY = "steady"
    RECONCILING = "reconciling"


class BaselineRequiredError(ConfigurationError):
    """Raised when incremental sync is requested before any resync."""

    def __init__(self, name: str):
        super().__init__(
            f"Destination '{name}' has no sync baseline. "
            f"Choose a mode and run: cloudsync resync {name} [local|remote|newer]"
        )
        self.name = name


class ReconciliationController:
    """Runs the engine in the right mode and records the outcome.

    Incremental sync is refused for an unseeded destination. Repeated failures
    never trigger a resync here; only an explicit ``resync`` re-derives the
    baseline.
    """

    def __init__(
        self,
        engine: RcloneBisyncEngine,
        baselines: BaselineStore,
        failures: FailureTracker,
    ):
        self.engine = engine
        self.baselines = baselines
        self.failures = failures
        self.logger = get_logger(self.__class__.__name__)

    def state(self, destination: DestinationConfig) -> ReconcileState:
        if self.baselines.has_baseline(destination):
            return ReconcileState.STEADY
        return ReconcileState.UNSEEDED

    def sync(self, destination: DestinationConfig) -> EngineResult:
        """Incremental bidirectional sync against the existing baseline.

        Raises:
            BaselineRequiredError: If the destination is unseeded
        """
        if self.state(destination) is ReconcileState.UNSEEDED:
            raise BaselineRequiredError(destination.name)

        destination.local.mkdir(parents=True, exist_ok=True)
        self.logger.info(
            "Syncing",
            destination=destination.name,
            local=destination.local_path,
            remote=self.engine.remote.spec(destination.remote_path),
        )

        result = self.engine.run(
            EngineInvocation.sync(destination.name, destination.local, destination.remote_path)
        )
        self._record(destination, result)
        return result

    def resync(self, destination: DestinationConfig, mode: ReconcileMode) -> EngineResult:
        """Re-derive the baseline from scratch with ``mode`` deciding divergences."""
        destination.local.mkdir(parents=True, exist_ok=True)
        self.logger.warning(
            "Running resync",
            destination=destination.name,
            mode=mode.value,
            state=ReconcileState.RECONCILING.value,
        )

        # Whatever happens below, the previous baseline no longer describes
        # both replicas.
        self.baselines.clear(destination.name)

        result = self.engine.run(
            EngineInvocation.establish_baseline(
                destination.name, destination.local, destination.remote_path, mode
            )
        )
        if result.success:
            self.baselines.record(destination, mode)
        self._record(destination, result)
        return result

    def _record(self, destination: DestinationConfig, result: EngineResult) -> None:
        if result.success:
            self.failures.record_success(destination.name)
            self.logger.info(
                "Sync completed successfully",
                destination=destination.name,
                duration=f"{result.duration:.2f}s",
            )
            return

        count = self.failures.record_failure(destination.name)
        self.logger.error(
            "Sync failed",
            destination=destination.name,
            consecutive=count,
            error=result.error_message,
            log_file=str(self.engine.settings.engine_log_file),
        )
        self.logger.error(f"To recover, run: cloudsync resync {destination.name}")
