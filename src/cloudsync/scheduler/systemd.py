"""systemd user timer backend (Linux)."""

import shlex
from pathlib import Path
from typing import List, Optional

from ..config.loader import write_atomic
from .base import ScheduleManager

UNIT_PREFIX = "cloudsync-sync-"


class SystemdScheduleManager(ScheduleManager):
    """A oneshot service plus a timer per destination under the user manager."""

    def __init__(self, units_dir: Optional[Path] = None, **kwargs):
        super().__init__(**kwargs)
        self.units_dir = Path(units_dir) if units_dir else Path.home() / ".config" / "systemd" / "user"

    def job_id(self, name: str) -> str:
        return f"{UNIT_PREFIX}{name}"

    def service_path(self, name: str) -> Path:
        return self.units_dir / f"{self.job_id(name)}.service"

    def timer_path(self, name: str) -> Path:
        return self.units_dir / f"{self.job_id(name)}.timer"

    def build_service(self, name: str) -> str:
        command = " ".join(shlex.quote(part) for part in self.command_factory(name))
        lines = [
            "[Unit]",
            f"Description=cloudsync sync for {name}",
            "",
            "[Service]",
            "Type=oneshot",
        ]
        for key, value in sorted(self.environment.items()):
            lines.append(f"Environment={shlex.quote(f'{key}={value}')}")
        lines.append(f"ExecStart={command}")
        if self.log_dir:
            log_file = self.log_dir / f"systemd-{name}.log"
            lines += [f"StandardOutput=append:{log_file}", f"StandardError=append:{log_file}"]
        return "\n".join(lines) + "\n"

    def build_timer(self, name: str) -> str:
        return "\n".join([
            "[Unit]",
            f"Description=Run cloudsync sync for {name} every {self.interval_seconds}s",
            "",
            "[Timer]",
            "OnActiveSec=0",
            f"OnUnitActiveSec={self.interval_seconds}s",
            "AccuracySec=1s",
            "",
            "[Install]",
            "WantedBy=timers.target",
        ]) + "\n"

    def install(self, name: str) -> None:
        self.units_dir.mkdir(parents=True, exist_ok=True)
        write_atomic(self.service_path(name), self.build_service(name))
        write_atomic(self.timer_path(name), self.build_timer(name))

        timer = f"{self.job_id(name)}.timer"
        self._run(["systemctl", "--user", "daemon-reload"])
        self._run(["systemctl", "--user", "enable", timer])
        self._run(["systemctl", "--user", "restart", timer])
        self.logger.info(
            "Sync service installed",
            destination=name,
            unit=timer,
            interval_seconds=self.interval_seconds,
        )

    def uninstall(self, name: str) -> bool:
        if not self.timer_path(name).exists() and not self.service_path(name).exists():
            self.logger.info("No sync service installed", destination=name)
            return False

        timer = f"{self.job_id(name)}.timer"
        self._run(["systemctl", "--user", "disable", "--now", timer], check=False)
        self.timer_path(name).unlink(missing_ok=True)
        self.service_path(name).unlink(missing_ok=True)
        self._run(["systemctl", "--user", "daemon-reload"], check=False)
        self.logger.info("Sync service removed", destination=name)
        return True

    def is_installed(self, name: str) -> bool:
        return self.timer_path(name).exists()

    def installed_names(self) -> List[str]:
        if not self.units_dir.exists():
            return []
        return sorted(
            p.name[len(UNIT_PREFIX):-len(".timer")]
            for p in self.units_dir.glob(f"{UNIT_PREFIX}*.timer")
        )
