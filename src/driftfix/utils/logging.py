"""
Logging configuration for driftfix.

Console output goes through rich's RichHandler; an optional file handler
writes plain, parseable lines.
"""

import logging
import sys
import traceback
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        result = super().format(record)
        if record.exc_info and not record.exc_text:
            result += "\n" + "".join(traceback.format_exception(*record.exc_info))
        return result


LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _parse_level(level: str | int) -> int:
    """
    Parse logging level from string or int.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int

    Returns:
        Logging level constant, INFO when the value is not recognised
    """
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level_upper = level.upper()
        if level_upper in LEVEL_MAP:
            return LEVEL_MAP[level_upper]
    return logging.INFO


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    format_string: str | None = None,
    file_mode: str = "a",
    console: Console | None = None,
    console_enabled: bool = True,
    use_rich: bool = True,
) -> logging.Logger:
    """
    Setup logging configuration for driftfix.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        log_file: Optional file path to write logs to (default: None, console only)
        format_string: Optional custom format string for the plain console handler
        file_mode: File mode for file handler - 'a' for append, 'w' for overwrite
        console: Optional Rich Console instance to log to
        console_enabled: Whether to enable console logging (default: True)
        use_rich: Whether to use RichHandler for console output (default: True)

    Returns:
        The "driftfix" logger
    """
    logger = logging.getLogger("driftfix")

    # Only clear handlers from this logger, not root or child loggers
    logger.handlers.clear()

    level_int = _parse_level(level)
    logger.setLevel(level_int)

    if console_enabled:
        if use_rich:
            logger.addHandler(
                RichHandler(
                    level=level_int,
                    console=console or Console(stderr=True),
                    show_time=True,
                    show_path=False,
                    markup=False,
                    rich_tracebacks=True,
                    tracebacks_show_locals=False,
                    log_time_format="[%X]",
                )
            )
        else:
            formatter = logging.Formatter(format_string or "%(levelname)s: %(asctime)s - %(name)s - %(message)s")
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level_int)
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode=file_mode)
        # File captures everything the logger lets through
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def setup_logging_from_config(config: dict[str, Any], project_dir: Path | None = None) -> logging.Logger:
    """
    Setup logging from driftfix configuration.

    Recognised keys under ``logging``: level, file, file_mode, format,
    console_enabled, console_type ("rich" or "plain").

    Args:
        config: Configuration dictionary (with a 'logging' section)
        project_dir: Optional project directory for resolving relative log file paths

    Returns:
        The "driftfix" logger
    """
    logging_config = config.get("logging") or {}

    level = logging_config.get("level", logging.INFO)
    log_file = logging_config.get("file")
    if log_file and project_dir:
        log_file = Path(log_file)
        if not log_file.is_absolute():
            log_file = project_dir / log_file

    console_enabled = logging_config.get("console_enabled", True)
    console_type = logging_config.get("console_type", "rich")

    return setup_logging(
        level=level,
        log_file=log_file,
        format_string=logging_config.get("format"),
        file_mode=logging_config.get("file_mode", "a"),
        console_enabled=console_enabled,
        use_rich=console_type == "rich",
    )


def get_logger(name: str = "driftfix") -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (default: "driftfix")

    Returns:
        Logger instance
    """
    if not name.startswith("driftfix"):
        name = f"driftfix.{name}"
    return logging.getLogger(name)
