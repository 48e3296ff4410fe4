"""Logging for the debpack command line."""

import logging
import sys
from typing import Optional

CONSOLE_PREFIX = "debpack"
DEBUG_CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
HANDLER_NAMES = ("debpack-console", "debpack-file")


class ConsoleFormatter(logging.Formatter):
    """Plain messages for INFO; warnings and errors keep their level as a prefix."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if record.levelno >= logging.WARNING:
            return f"{CONSOLE_PREFIX}: {record.levelname.lower()}: {message}"
        return f"{CONSOLE_PREFIX}: {message}"


def setup_logging(debug: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """
    Route log records to stderr, and to ``log_file`` when given.

    The console stays terse (``debpack: message``) unless ``debug`` is set, in
    which case records carry their level and logger name. The log file always
    gets timestamped records at the same level as the console.
    """
    log_level = logging.DEBUG if debug else logging.INFO

    logger = logging.getLogger()
    logger.setLevel(log_level)

    # Replace handlers from an earlier call; leave foreign ones alone
    for handler in list(logger.handlers):
        if handler.get_name() in HANDLER_NAMES:
            logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.set_name("debpack-console")
    console_handler.setLevel(log_level)
    if debug:
        console_handler.setFormatter(logging.Formatter(DEBUG_CONSOLE_FORMAT))
    else:
        console_handler.setFormatter(ConsoleFormatter("%(message)s"))
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not create log file: {e}")
        else:
            file_handler.set_name("debpack-file")
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            logger.addHandler(file_handler)

    return logger
