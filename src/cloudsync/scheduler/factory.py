"""Schedule manager factory for picking the platform's trigger backend."""

import sys
from typing import Dict, List, Type

from ..config.settings import AppSettings
from .base import ScheduleManager, SchedulerError, trigger_environment
from .launchd import LaunchdScheduleManager
from .systemd import SystemdScheduleManager


class ScheduleManagerFactory:
    """Factory for creating schedule manager instances."""

    _backends: Dict[str, Type[ScheduleManager]] = {
        "launchd": LaunchdScheduleManager,
        "systemd": SystemdScheduleManager,
    }

    @classmethod
    def create(cls, settings: AppSettings, **kwargs) -> ScheduleManager:
        """Create the schedule manager selected by settings.

        Raises:
            SchedulerError: If the backend is not supported
        """
        backend = settings.scheduler.backend
        if backend == "auto":
            backend = "launchd" if sys.platform == "darwin" else "systemd"

        if backend not in cls._backends:
            raise SchedulerError(f"Unsupported scheduler backend: {backend}")

        kwargs.setdefault("interval_seconds", settings.sync.interval_seconds)
        kwargs.setdefault("log_dir", settings.logs_dir)
        kwargs.setdefault("environment", trigger_environment(settings))
        return cls._backends[backend](**kwargs)

    @classmethod
    def get_supported_backends(cls) -> List[str]:
        return list(cls._backends.keys())

    @classmethod
    def register_backend(cls, name: str, manager_class: Type[ScheduleManager]):
        cls._backends[name] = manager_class
