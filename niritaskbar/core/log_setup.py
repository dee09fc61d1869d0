import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Union

import structlog
from rich.logging import RichHandler
from structlog.dev import ConsoleRenderer
from structlog.processors import (
    JSONRenderer,
    StackInfoRenderer,
    TimeStamper,
    add_log_level,
    format_exc_info,
)
from structlog.stdlib import BoundLogger, ProcessorFormatter, add_logger_name

from niritaskbar.shared.path_handler import PathHandler

LOG_MAX_BYTES = 1024 * 1024
LOG_BACKUP_COUNT = 2

# Libraries that log every callback at DEBUG.
NOISY_LOGGERS = ("asyncio",)


class RepeatFilter(logging.Filter):
    """
    Drops a warning that is identical to the one logged just before it.

    The window set warns once per unexpected event, and a compositor that
    misbehaves tends to repeat the same event many times in a row.
    """

    def __init__(self):
        super().__init__()
        self._last_warning: Optional[str] = None

    def filter(self, record):
        if record.levelno != logging.WARNING:
            self._last_warning = None
            return True
        message = record.getMessage()
        if message == self._last_warning:
            return False
        self._last_warning = message
        return True


def _pre_chain() -> List:
    return [
        add_log_level,
        add_logger_name,
        TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
        StackInfoRenderer(),
        format_exc_info,
    ]


def _file_handler(log_file: Union[str, Path]) -> logging.Handler:
    """JSON lines, rotated at 1 MiB."""
    handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(
        ProcessorFormatter(foreign_pre_chain=_pre_chain(), processor=JSONRenderer())
    )
    return handler


def _console_handler() -> logging.Handler:
    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_path=False,
        show_time=False,
    )
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processor=ConsoleRenderer(colors=False),
            fmt="%(message)s",
        )
    )
    return handler


def setup_logging(
    level: int = logging.DEBUG, log_file: Optional[Union[str, Path]] = None
) -> BoundLogger:
    """
    Routes stdlib logging and structlog through one pair of handlers: a rich
    console and a rotating JSON file under $XDG_STATE_HOME/niritaskbar.

    Args:
        level: Minimum level for both handlers.
        log_file: Overrides the log file location.

    Returns:
        The application's structlog logger.
    """
    structlog.configure(
        processors=_pre_chain() + [ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    log_file = log_file or PathHandler().get_log_file()
    for handler in (_file_handler(log_file), _console_handler()):
        handler.setLevel(level)
        handler.addFilter(RepeatFilter())
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    return structlog.get_logger("niritaskbar")
