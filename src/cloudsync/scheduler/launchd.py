"""launchd agent backend (macOS)."""

import plistlib
from pathlib import Path
from typing import List, Optional

from .base import ScheduleManager

LABEL_PREFIX = "com.cloudsync.sync."


class LaunchdScheduleManager(ScheduleManager):
    """One LaunchAgent plist per destination, loaded with ``launchctl``."""

    def __init__(self, agents_dir: Optional[Path] = None, **kwargs):
        super().__init__(**kwargs)
        self.agents_dir = Path(agents_dir) if agents_dir else Path.home() / "Library" / "LaunchAgents"

    def job_id(self, name: str) -> str:
        return f"{LABEL_PREFIX}{name}"

    def plist_path(self, name: str) -> Path:
        return self.agents_dir / f"{self.job_id(name)}.plist"

    def build_plist(self, name: str) -> dict:
        plist = {
            "Label": self.job_id(name),
            "ProgramArguments": self.command_factory(name),
            "StartInterval": self.interval_seconds,
            "RunAtLoad": True,
            "EnvironmentVariables": {
                "PATH": "/usr/local/bin:/usr/bin:/bin:/opt/homebrew/bin",
                **self.environment,
            },
        }
        if self.log_dir:
            log_file = str(self.log_dir / f"launchd-{name}.log")
            plist["StandardOutPath"] = log_file
            plist["StandardErrorPath"] = log_file
        return plist

    def is_loaded(self, name: str) -> bool:
        return self._run(["launchctl", "list", self.job_id(name)], check=False).returncode == 0

    def install(self, name: str) -> None:
        plist_path = self.plist_path(name)
        self.agents_dir.mkdir(parents=True, exist_ok=True)
        plist_path.write_bytes(plistlib.dumps(self.build_plist(name)))

        if self.is_loaded(name):
            self._run(["launchctl", "unload", str(plist_path)], check=False)

        self._run(["launchctl", "load", str(plist_path)])
        self.logger.info(
            "Sync service installed",
            destination=name,
            label=self.job_id(name),
            interval_seconds=self.interval_seconds,
        )

    def uninstall(self, name: str) -> bool:
        plist_path = self.plist_path(name)
        if not plist_path.exists():
            self.logger.info("No sync service installed", destination=name)
            return False

        if self.is_loaded(name):
            self._run(["launchctl", "unload", str(plist_path)], check=False)
        plist_path.unlink(missing_ok=True)
        self.logger.info("Sync service removed", destination=name)
        return True

    def is_installed(self, name: str) -> bool:
        return self.plist_path(name).exists()

    def installed_names(self) -> List[str]:
        if not self.agents_dir.exists():
            return []
        return sorted(
            p.name[len(LABEL_PREFIX):-len(".plist")]
            for p in self.agents_dir.glob(f"{LABEL_PREFIX}*.plist")
        )
