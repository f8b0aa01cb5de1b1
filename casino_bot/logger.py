"""Logging setup for the casino bot."""

import logging
import logging.handlers
import pathlib
import sys
from typing import Optional

from casino_bot.config import settings

# Guards against double initialisation
_logging_initialized = False

# ANSI colours for the console
COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
    "RESET": "\033[0m",
}

NOISY_LOGGERS = ("aiogram", "apscheduler", "sqlalchemy.engine", "aiosqlite", "asyncio")


class ColoredFormatter(logging.Formatter):
    """Console formatter that colours the level name."""

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in COLORS:
            record.levelname = f"{COLORS[levelname]}{levelname}{COLORS['RESET']}"
        result = super().format(record)
        record.levelname = levelname
        return result


class ContextFilter(logging.Filter):
    """Adds ``short_name`` (last dotted component of the logger name)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name:
            record.short_name = record.name.rsplit(".", 1)[-1]
        else:
            record.short_name = "root"
        return True


def _rotating_handler(
    path: pathlib.Path,
    level: int,
    formatter: logging.Formatter,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    return handler


def setup_logging(log_dir: Optional[str] = None, level: Optional[str] = None) -> None:
    """Initialise file and console logging once per process."""
    global _logging_initialized

    if _logging_initialized:
        return
    _logging_initialized = True

    directory = pathlib.Path(log_dir or settings.log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    main_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG)

    file_format = logging.Formatter(
        "[%(asctime)s] %(levelname)-8s [%(short_name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_format = ColoredFormatter(
        "[%(asctime)s] %(levelname)-8s [%(short_name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    error_format = logging.Formatter(
        "[%(asctime)s] %(levelname)-8s [%(name)s:%(lineno)d] %(message)s\n"
        "    File: %(pathname)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger.addHandler(
        _rotating_handler(directory / "casino.log", main_level, file_format, 10 * 1024 * 1024, 5)
    )
    root_logger.addHandler(
        _rotating_handler(directory / "errors.log", logging.ERROR, error_format, 5 * 1024 * 1024, 10)
    )
    root_logger.addHandler(
        _rotating_handler(directory / "debug.log", logging.DEBUG, file_format, 20 * 1024 * 1024, 3)
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(main_level)
    console_handler.setFormatter(console_format)
    console_handler.addFilter(ContextFilter())
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.info(f"Logging: level={logging.getLevelName(main_level)} | dir={directory.absolute()}")
    logging.info("  casino.log (INFO+), errors.log (ERROR+), debug.log (DEBUG+)")
