"""Application configuration settings."""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Synchronization behaviour."""

    interval_seconds: int = Field(default=60, ge=10)
    failure_threshold: int = Field(default=3, ge=1)
    engine_timeout_seconds: Optional[int] = Field(default=None, ge=1)
    backup_root: str = Field(default=".cloudsync-backups")

    model_config = SettingsConfigDict(env_prefix="CLOUDSYNC_SYNC_")

    @field_validator("backup_root")
    @classmethod
    def validate_backup_root(cls, v: str) -> str:
        v = v.strip("/")
        if not v:
            raise ValueError("backup_root cannot be the remote root")
        return v


class RemoteSettings(BaseSettings):
    """Defaults for the shared remote."""

    default_name: str = Field(default="opencloud")
    connect_timeout_seconds: int = Field(default=30, ge=1)

    model_config = SettingsConfigDict(env_prefix="CLOUDSYNC_REMOTE_")


class SchedulerSettings(BaseSettings):
    """Periodic trigger configuration."""

    backend: str = Field(default="auto")

    model_config = SettingsConfigDict(env_prefix="CLOUDSYNC_SCHEDULER_")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        valid = ["auto", "launchd", "systemd"]
        if v.lower() not in valid:
            raise ValueError(f"Scheduler backend must be one of: {valid}")
        return v.lower()


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file_path: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(env_prefix="CLOUDSYNC_LOG_")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in ("console", "json"):
            raise ValueError("Log format must be 'console' or 'json'")
        return v.lower()

    def resolved_file_path(self, state_path: Path) -> str:
        return self.file_path or str(state_path / "logs" / "cloudsync.log")


class AppSettings(BaseSettings):
    """Main application settings."""

    name: str = Field(default="cloudsync")
    version: str = Field(default="1.0.0")

    state_dir: str = Field(default="~/.config/cloudsync")
    rclone_path: str = Field(default="rclone")

    # Sub-settings
    sync: SyncSettings = Field(default_factory=SyncSettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix="CLOUDSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def state_path(self) -> Path:
        return Path(self.state_dir).expanduser()

    @property
    def destinations_dir(self) -> Path:
        return self.state_path / "destinations"

    @property
    def run_dir(self) -> Path:
        return self.state_path / "run"

    @property
    def baselines_dir(self) -> Path:
        return self.state_path / "baselines"

    @property
    def backups_dir(self) -> Path:
        return self.state_path / "backups"

    @property
    def logs_dir(self) -> Path:
        return self.state_path / "logs"

    @property
    def remote_file(self) -> Path:
        return self.state_path / "remote.yaml"

    @property
    def engine_log_file(self) -> Path:
        return self.logs_dir / "sync.log"

    @property
    def mount_log_file(self) -> Path:
        return self.logs_dir / "mount.log"


_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get application settings."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reload_settings() -> AppSettings:
    """Re-read settings from the environment."""
    global _settings
    _settings = AppSettings()
    return _settings
