"""
PiRSS Logging
=============

Console and rotating-file logging for the service.

Component loggers carry a ``component`` field, and feed or article work
binds ``feed_id`` and ``article_url`` on top. The console prints that
context as a short ``[key=value]`` tag after the logger name; JSON output
puts the same fields at the top level of each line so a log file can be
filtered per feed or per article.
"""

import asyncio
import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from ..config.settings import LoggingSettings


ROOT_LOGGER_NAME = "pirss"

# Chatty third-party loggers capped at WARNING
QUIET_LOGGERS = ("aiohttp.access", "aiohttp.client", "feedparser")

_STANDARD_ATTRIBUTES = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields attached to ``record`` through ``extra``."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRIBUTES
    }


class JSONLineFormatter(logging.Formatter):
    """One JSON object per record with context fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(record_context(record))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """``[12:00:00] INFO     pirss.feed_generator [feed_id=sspai] - message``"""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = False):
        super().__init__(datefmt="%H:%M:%S")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:8}"
        if self.color and record.levelname in self.LEVEL_COLORS:
            level = f"{self.LEVEL_COLORS[record.levelname]}{level}{self.RESET}"

        line = (
            f"[{self.formatTime(record, self.datefmt)}] {level} "
            f"{record.name}{self.context_tag(record)} - {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line

    @staticmethod
    def context_tag(record: logging.LogRecord) -> str:
        # component is already in the logger name
        context = record_context(record)
        context.pop("component", None)
        if not context:
            return ""
        return " [" + " ".join(f"{key}={value}" for key, value in context.items()) + "]"


class ComponentLogger(logging.LoggerAdapter):
    """Adapter merging its bound context into each record's ``extra``."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def bind(self, **context) -> "ComponentLogger":
        """New adapter on the same logger with additional context."""
        merged = dict(self.extra)
        merged.update({key: value for key, value in context.items() if value is not None})
        return ComponentLogger(self.logger, merged)


def get_logger_for_component(component_name: str, **context) -> ComponentLogger:
    """Logger ``pirss.<component_name>`` bound to ``component`` and ``context``.

    Args:
        component_name: Name of the component (e.g., 'fetcher', 'cache')
        **context: Extra fields such as ``feed_id`` or ``article_url``;
            ``None`` values are dropped

    Returns:
        Logger adapter with context
    """
    base_logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component_name}")
    return ComponentLogger(base_logger, {"component": component_name}).bind(**context)


def configure_application_logging(settings: "LoggingSettings", level: Optional[str] = None) -> logging.Logger:
    """Install console and file handlers on the ``pirss`` logger.

    Calling it again replaces the handlers from the previous call. The file
    handler always writes JSON lines; the console writes JSON only when
    ``structured_logging`` is set, and colors levels only on a terminal.

    Args:
        settings: Logging section of the application settings
        level: Overrides ``settings.level`` (e.g. ``DEBUG`` from ``--debug``)

    Returns:
        The configured ``pirss`` logger
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel((level or settings.level.value).upper())

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if settings.console_logging:
        console_handler = logging.StreamHandler(sys.stdout)
        if settings.structured_logging:
            console_handler.setFormatter(JSONLineFormatter())
        else:
            console_handler.setFormatter(ConsoleFormatter(color=sys.stdout.isatty()))
        root.addHandler(console_handler)

    if settings.file_path:
        log_path = Path(settings.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=settings.max_file_size_mb * 1024 * 1024,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONLineFormatter())
        root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


class OperationTimer:
    """Context manager logging how long a block took.

    The completion record carries ``duration_seconds`` plus the context
    given at construction and anything recorded with :meth:`note`.
    Cancellation is logged at INFO since shutdown cancels in-flight work.
    """

    def __init__(self, logger: logging.LoggerAdapter, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.started: Optional[float] = None

    def note(self, **fields) -> None:
        self.context.update(fields)

    def __enter__(self) -> "OperationTimer":
        self.started = time.perf_counter()
        self.logger.debug(f"Starting {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        duration = round(time.perf_counter() - self.started, 3)
        context = {**self.context, "duration_seconds": duration}

        if exc_type is None:
            self.logger.info(f"Completed {self.operation} in {duration:.3f}s", extra=context)
        elif issubclass(exc_type, asyncio.CancelledError):
            self.logger.info(f"Cancelled {self.operation} after {duration:.3f}s", extra=context)
        else:
            self.logger.error(f"Failed {self.operation} after {duration:.3f}s: {exc_val}", extra=context)
        return False
