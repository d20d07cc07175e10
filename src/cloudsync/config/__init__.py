"""Configuration package: settings, schemas and YAML persistence.

The destination registry lives in ``cloudsync.config.manager``; it depends on
the state and scheduler packages, which themselves import from here.
"""

from .settings import (
    AppSettings,
    SyncSettings,
    RemoteSettings,
    SchedulerSettings,
    LoggingSettings,
    get_settings,
    reload_settings
)

from .schema import (
    DestinationConfig,
    RemoteConnection,
    BaselineRecord,
    ReconcileMode,
    build_webdav_url
)

from .loader import (
    ConfigLoader,
    ConfigurationError,
    InvalidNameError,
    NotFoundError,
    RemoteNotConfiguredError
)

__all__ = [
    "AppSettings",
    "SyncSettings",
    "RemoteSettings",
    "SchedulerSettings",
    "LoggingSettings",
    "get_settings",
    "reload_settings",

    "DestinationConfig",
    "RemoteConnection",
    "BaselineRecord",
    "ReconcileMode",
    "build_webdav_url",

    "ConfigLoader",
    "ConfigurationError",
    "InvalidNameError",
    "NotFoundError",
    "RemoteNotConfiguredError"
]
