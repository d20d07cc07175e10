"""Configuration schema definitions for destinations and the shared remote."""

import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator


NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

# Sub-command words of ``cloudsync sync`` that would shadow ``sync <name>``.
RESERVED_NAMES = frozenset({"ls", "rm", "add"})


class ReconcileMode(str, Enum):
    """Which side wins when a destination's baseline is re-derived."""
    LOCAL = "local"
    REMOTE = "remote"
    NEWER = "newer"

    @property
    def description(self) -> str:
        return {
            ReconcileMode.LOCAL: "Local folder is source of truth",
            ReconcileMode.REMOTE: "Remote folder is source of truth",
            ReconcileMode.NEWER: "Newer file wins, superseded versions are kept as backups",
        }[self]


def normalize_remote_path(value: str) -> str:
    """Strip surrounding slashes and collapse duplicate separators."""
    parts = [p for p in value.strip().split("/") if p and p != "."]
    if any(p == ".." for p in parts):
        raise ValueError("Remote path cannot contain '..'")
    return "/".join(parts)


class DestinationConfig(BaseModel):
    """A named pairing of one local directory and one remote directory."""

    name: str = Field(..., description="Unique destination name")
    local_path: str = Field(..., description="Absolute local directory")
    remote_path: str = Field(..., description="Directory relative to the remote root")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not NAME_PATTERN.match(v):
            raise ValueError("Name may only contain letters, digits, '-' and '_'")
        if v in RESERVED_NAMES:
            raise ValueError(f"'{v}' is a reserved word")
        return v

    @field_validator("local_path")
    @classmethod
    def validate_local_path(cls, v: str) -> str:
        path = Path(v).expanduser()
        if not path.is_absolute():
            path = path.absolute()
        return str(path)

    @field_validator("remote_path")
    @classmethod
    def validate_remote_path(cls, v: str) -> str:
        v = normalize_remote_path(v)
        if not v:
            raise ValueError("Remote path cannot be the remote root")
        return v

    @property
    def local(self) -> Path:
        return Path(self.local_path)


class RemoteConnection(BaseModel):
    """The single shared remote, written by ``setup`` and read by everything else."""

    name: str = Field(default="opencloud", description="Engine remote name")
    url: str = Field(default="", description="WebDAV URL")
    username: str = Field(default="")
    vendor: str = Field(default="owncloud")
    mount_point: str = Field(default="~/OpenCloud")
    cache_size_gb: int = Field(default=10, ge=1)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not NAME_PATTERN.match(v):
            raise ValueError("Remote name may only contain letters, digits, '-' and '_'")
        return v

    @property
    def mount_path(self) -> Path:
        return Path(self.mount_point).expanduser()

    def spec(self, path: str = "") -> str:
        """Engine path string, e.g. ``opencloud:Music/Ableton``."""
        return f"{self.name}:{path}"


def build_webdav_url(server: str) -> str:
    """Turn user input like ``https://cloud.example.com/`` into the WebDAV endpoint."""
    server = server.strip()
    for prefix in ("https://", "http://"):
        if server.startswith(prefix):
            server = server[len(prefix):]
    server = server.rstrip("/")
    return f"https://{server}/remote.php/webdav/"


class BaselineRecord(BaseModel):
    """Proof that a destination's path pair has been reconciled at least once."""

    local_path: str
    remote_path: str
    mode: ReconcileMode
    established_at: datetime = Field(default_factory=datetime.now)

    def matches(self, destination: DestinationConfig) -> bool:
        return (
            self.local_path == destination.local_path
            and self.remote_path == destination.remote_path
        )
