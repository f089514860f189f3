"""
Logging configuration for SubFix.

Records go to the console and to a rotating log file. A correction run draws
a tqdm bar on the same terminal, so the commands wrap the bar in
`progress_logging()`, which routes console records through `tqdm.write`
while the bar is shown.
"""

import logging
import os
import sys
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from typing import Iterator, Optional

from tqdm.contrib.logging import logging_redirect_tqdm

from .utils import ensure_dir_exists

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Per-request lines from the HTTP client drown out batch progress
QUIET_LOGGERS = ("httpx", "httpcore")


def _console_handler(log_level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)
    return handler


def _file_handler(log_path: str, formatter: logging.Formatter, max_bytes: int, backup_count: int) -> logging.Handler:
    handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8')
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_level: int = logging.INFO,
    log_dir: str = "logs",
    log_file: str = "subfix.log",
    max_bytes: int = 10 * 1024 * 1024, # 10 MB
    backup_count: int = 5
) -> Optional[str]:
    """
    Configures the root logger for a SubFix run.

    The CLI calls this twice (before and after the config file is read), so
    every call replaces and closes the handlers the previous call installed.

    Args:
        log_level: The minimum logging level (e.g., logging.INFO, logging.DEBUG).
        log_dir: The directory to store log files.
        log_file: The name of the log file.
        max_bytes: Maximum size of a log file before rotation.
        backup_count: Number of backup log files to keep.

    Returns:
        The log file path, or None when only console logging could be set up.
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    root.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    root.addHandler(_console_handler(log_level, formatter))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    log_path = os.path.join(log_dir, log_file)
    try:
        ensure_dir_exists(log_dir)
        root.addHandler(_file_handler(log_path, formatter, max_bytes, backup_count))
    except Exception as e:
        logging.getLogger(__name__).error(f"File logging disabled, could not open {log_path}: {e}")
        return None
    logging.getLogger(__name__).info(f"Logging initialized. Log file: {log_path}")
    return log_path


@contextmanager
def progress_logging() -> Iterator[None]:
    """Sends console log records through tqdm.write so they print above an active progress bar."""
    with logging_redirect_tqdm(loggers=[logging.getLogger()]):
        yield
