"""Scheduler package for periodic per-destination sync triggers."""

from .base import ScheduleManager, SchedulerError, default_sync_command, trigger_environment
from .launchd import LaunchdScheduleManager
from .systemd import SystemdScheduleManager
from .factory import ScheduleManagerFactory

__all__ = [
    "ScheduleManager",
    "SchedulerError",
    "default_sync_command",
    "trigger_environment",
    "LaunchdScheduleManager",
    "SystemdScheduleManager",
    "ScheduleManagerFactory"
]
