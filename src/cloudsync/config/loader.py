"""Configuration loader for YAML state files."""

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union

import yaml
from pydantic import BaseModel, ValidationError

from .schema import RemoteConnection
from ..utils.logging import get_logger


ModelT = TypeVar("ModelT", bound=BaseModel)


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


class InvalidNameError(ConfigurationError):
    """Raised when a destination name is outside the allowed character set."""
    pass


class NotFoundError(ConfigurationError):
    """Raised when a destination name is not registered."""
    pass


class RemoteNotConfiguredError(ConfigurationError):
    """Raised when an operation needs the shared remote before ``setup`` ran."""
    pass


def write_atomic(file_path: Union[str, Path], content: str) -> None:
    """Write a file so readers never observe a partial write."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=file_path.parent, prefix=f".{file_path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, file_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class ConfigLoader:
    """Loads and saves pydantic models as YAML documents."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def load_model(self, file_path: Union[str, Path], model: Type[ModelT]) -> ModelT:
        """Load and validate a YAML file.

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return model.model_validate(data)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {file_path}: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {file_path}: {e}")

    def save_model(self, instance: BaseModel, file_path: Union[str, Path]) -> None:
        data: Dict[str, Any] = instance.model_dump(mode="json")
        write_atomic(
            file_path,
            yaml.safe_dump(data, default_flow_style=False, indent=2, allow_unicode=True, sort_keys=False),
        )
        self.logger.debug("Configuration saved", file_path=str(file_path))

    def load_remote(self, file_path: Union[str, Path]) -> Optional[RemoteConnection]:
        """Load the shared remote definition, or None before ``setup``."""
        if not Path(file_path).exists():
            return None
        return self.load_model(file_path, RemoteConnection)

    def save_remote(self, remote: RemoteConnection, file_path: Union[str, Path]) -> None:
        self.save_model(remote, file_path)
        self.logger.info("Remote connection saved", remote=remote.name, url=remote.url)
