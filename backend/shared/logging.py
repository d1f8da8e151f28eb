"""Structured logging for the game server.

structlog renders through the stdlib root logger so that modules using either
``structlog.get_logger()`` or ``logging.getLogger(__name__)`` end up in the same
handlers with the same format.

Environment variables (read through LoggingSettings):
- LOG_FORMAT: "json" for machine-readable lines, "console" or unset for
  human-readable output (colored when stdout is a terminal).
- LOG_LEVEL: "DEBUG", "INFO" (default), "WARNING", "ERROR", or "CRITICAL".
"""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import field_validator
from pydantic_settings import BaseSettings

from shared.validators import parse_log_choice

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_VALID_LOG_FORMATS = {"json", "console", ""}
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Loggers that are chatty at INFO; raised to WARNING on setup.
_QUIET_LOGGERS = ("uvicorn.access",)


class LoggingSettings(BaseSettings):
    log_format: str = ""
    log_level: str = "INFO"

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        return parse_log_choice(v, _VALID_LOG_FORMATS, name="LOG_FORMAT")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return parse_log_choice(v, _VALID_LOG_LEVELS, name="LOG_LEVEL", upper=True)

    @property
    def json_mode(self) -> bool:
        return self.log_format == "json"

    @property
    def level(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level]


def _serialize_enums(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Render Enum values (GameStatus, FinishReason, error codes) as plain strings."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def _is_test() -> bool:
    return "pytest" in sys.modules


def _common_processors() -> list[Any]:
    """Processors applied to structlog events and to plain stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _serialize_enums,
    ]


def _attach_handler(root: logging.Logger, handler: logging.Handler, *, json_mode: bool, colors: bool) -> None:
    renderer = structlog.processors.JSONRenderer() if json_mode else structlog.dev.ConsoleRenderer(colors=colors)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_common_processors(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        ),
    )
    root.addHandler(handler)


def configure_structlog() -> None:
    """Send structlog events through the stdlib root logger and its handlers."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_common_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            # exc_info is formatted by each handler's ProcessorFormatter
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def log_file_path(log_dir: Path | str) -> Path:
    """Path of a new log file in ``log_dir``, named after the current UTC time."""
    return Path(log_dir) / f"{datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)}.log"


def setup_logging(
    log_dir: Path | str | None = None,
    level: int | None = None,
    settings: LoggingSettings | None = None,
) -> Path | None:
    """Configure structlog and the root logger.

    Always logs to stdout. With ``log_dir`` a timestamped file is opened as
    well, except under pytest. Safe to call more than once: earlier handlers
    are replaced. Returns the log file path when one was created.
    """
    settings = settings or LoggingSettings()
    level = settings.level if level is None else level
    configure_structlog()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _attach_handler(root, logging.StreamHandler(sys.stdout), json_mode=settings.json_mode, colors=sys.stdout.isatty())

    if log_dir is None or _is_test():
        return None

    file_path = log_file_path(log_dir)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    _attach_handler(root, logging.FileHandler(file_path), json_mode=settings.json_mode, colors=False)
    return file_path
