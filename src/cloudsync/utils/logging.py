"""Logging for short-lived sync processes.

Every invocation (interactive or fired by launchd/systemd) writes structured
events to ``<state_dir>/logs/cloudsync.log`` and, colored, to stderr. The
engine's own output goes to a separate ``sync.log`` written by rclone.
"""

import functools
import logging
import logging.handlers
import sys
import time
from pathlib import Path
from typing import List, Optional

import colorlog
import structlog
from structlog.typing import Processor


LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# Marks handlers owned by this module so reconfiguration can find them.
_OWNED = "_cloudsync"


def _level(name: str) -> int:
    return getattr(logging, name.upper())


def _processors(format_type: str) -> List[Processor]:
    chain: List[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if format_type == "json":
        chain.append(structlog.processors.JSONRenderer())
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return chain


def _install(handler: logging.Handler, level: str) -> None:
    handler.setLevel(_level(level))
    setattr(handler, _OWNED, True)
    logging.getLogger().addHandler(handler)


def remove_handlers() -> None:
    """Detach and close the handlers a previous setup_logging call added."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _OWNED, False):
            root.removeHandler(handler)
            handler.close()


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
    settings=None,
) -> None:
    """Configure structlog and the stdlib handlers behind it.

    Arguments override the logging section of ``settings``, which defaults to
    the global settings. Calling it again replaces the handlers instead of
    adding more.
    """
    if settings is None:
        from ..config.settings import get_settings
        settings = get_settings()

    level = log_level or settings.logging.level
    format_type = log_format or settings.logging.format
    file_path = log_file or settings.logging.resolved_file_path(settings.state_path)

    remove_handlers()
    logging.getLogger().setLevel(_level(level))

    structlog.configure(
        processors=_processors(format_type),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        # Loggers are created at import time, before the CLI picks a level.
        cache_logger_on_first_use=False,
    )

    if file_path:
        setup_file_logging(file_path, level)
    setup_console_logging(level)


def setup_file_logging(file_path: str, level: str) -> None:
    """Append to a size-rotated log file."""
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        file_path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
    )
    handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    _install(handler, level)


def setup_console_logging(level: str) -> None:
    """Colored output on stderr; stdout is left to ``status`` and ``sync ls``."""
    handler = colorlog.StreamHandler(sys.stderr)
    handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s[%(levelname)s]%(reset)s %(message)s",
            reset=True,
            log_colors=LOG_COLORS,
        )
    )
    _install(handler, level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_execution_time(func):
    """Log how long ``func`` took; debug on success, error on exception."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = get_logger(func.__module__)
        started = time.monotonic()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(
                "Operation failed",
                operation=func.__qualname__,
                elapsed=f"{time.monotonic() - started:.3f}s",
                error=str(e),
            )
            raise
        logger.debug(
            "Operation finished",
            operation=func.__qualname__,
            elapsed=f"{time.monotonic() - started:.3f}s",
        )
        return result

    return wrapper
