"""Core sync logic package."""

from .engine import (
    RcloneBisyncEngine,
    EngineInvocation,
    EngineResult,
    EngineError,
    InvocationKind
)
from .reconciliation import ReconciliationController, ReconcileState, BaselineRequiredError
from .connector import SyncOrchestrator, RunOutcome, Components, build_components

__all__ = [
    "RcloneBisyncEngine",
    "EngineInvocation",
    "EngineResult",
    "EngineError",
    "InvocationKind",
    "ReconciliationController",
    "ReconcileState",
    "BaselineRequiredError",
    "SyncOrchestrator",
    "RunOutcome",
    "Components",
    "build_components"
]
