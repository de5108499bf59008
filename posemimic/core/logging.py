"""Console and file logging for the posemimic namespace"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO


LOGGER_NAMESPACE = "posemimic"

CONSOLE_FORMAT = "%(asctime)s │ %(levelname)-8s │ %(name)-24s │ %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-24s | %(message)s"


class ColoredFormatter(logging.Formatter):
    """Terminal formatter; level and logger name are wrapped in ANSI colors."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    NAME_COLOR = "\033[34m"
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Colour a copy; other handlers see the same record object
        colored = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        colored.name = f"{self.NAME_COLOR}{record.name}{self.RESET}"
        return super().format(colored)


def _console_handler(stream: TextIO) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    if stream.isatty():
        handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    else:
        handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%H:%M:%S"))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_dir: str = "logs",
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure the package logger. Calling it again only changes the level.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        log_file: File name prefix; a timestamped file is created in `log_dir`
        stream: Console stream, stdout by default; colored only on a terminal

    Raises:
        ValueError: unknown level name
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(numeric_level)
    if logger.handlers:
        return logger

    logger.addHandler(_console_handler(stream or sys.stdout))

    if log_file:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        file_path = directory / f"{log_file}_{datetime.now():%Y%m%d_%H%M%S}.log"

        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(file_handler)
        logger.info(f"Logging to file: {file_path}")

    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a component, e.g. `get_logger("rig.registry")`."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")
