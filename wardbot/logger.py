"""Logging setup for the moderation worker."""

import logging
import logging.handlers
import pathlib
import sys

from wardbot.config import settings

_logging_initialized = False

COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
    "RESET": "\033[0m",
}

LINE_FORMAT = "[%(asctime)s] %(levelname)-8s [%(short_name)s] %(message)s"


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name."""

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
        record.short_name = record.name.rsplit(".", 1)[-1] if record.name else "root"
        return True


def _rotating(path: pathlib.Path, level: int, fmt: logging.Formatter, max_mb: int, backups: int):
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(fmt)
    handler.addFilter(ContextFilter())
    return handler


def setup_logging() -> None:
    """Configure root logging once per process."""
    global _logging_initialized

    if _logging_initialized:
        return
    _logging_initialized = True

    log_dir = pathlib.Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    level = getattr(logging, settings.log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG)

    file_format = logging.Formatter(LINE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    error_format = logging.Formatter(
        "[%(asctime)s] %(levelname)-8s [%(name)s:%(lineno)d] %(message)s\n"
        "    File: %(pathname)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger.addHandler(_rotating(log_dir / "wardbot.log", level, file_format, 10, 5))
    # Audit failures are CRITICAL and must survive in their own file
    root_logger.addHandler(_rotating(log_dir / "errors.log", logging.ERROR, error_format, 5, 10))
    root_logger.addHandler(_rotating(log_dir / "debug.log", logging.DEBUG, file_format, 20, 3))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(LINE_FORMAT, datefmt="%H:%M:%S"))
    console_handler.addFilter(ContextFilter())
    root_logger.addHandler(console_handler)

    logging.getLogger("aiogram").setLevel(logging.INFO)
    logging.getLogger("aiogram.event").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.info(f"Logging: level={settings.log_level} | dir={log_dir.absolute()}")
