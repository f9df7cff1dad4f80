"""
Logging setup for lokit.

Every module logs through ``logging.getLogger(__name__)``; those loggers are
children of the ``lokit`` logger configured here.
"""
import logging
import os
import sys
from typing import List, Optional

from tqdm import tqdm

LOGGER_NAME = "lokit"
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


class TqdmLoggingHandler(logging.Handler):
    """Writes records through ``tqdm.write`` so they do not tear running progress bars."""

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=sys.stderr)
            self.flush()
        except (KeyboardInterrupt, SystemExit):
            raise
        except Exception:
            self.handleError(record)


def _build_handlers(log_file_path: Optional[str], log_to_console: bool) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file_path, encoding='utf-8'))
    if log_to_console:
        handlers.append(TqdmLoggingHandler())
    return handlers


def setup_logger(log_level_str: str, log_file_path: Optional[str], log_to_console: bool) -> logging.Logger:
    """
    Configure the ``lokit`` logger.

    Args:
        log_level_str: Level name such as 'INFO' or 'debug'. Unknown names fall back to INFO.
        log_file_path: Log file to append to; None or empty disables file logging.
        log_to_console: Also log to stderr through tqdm.

    Returns:
        logging.Logger: The configured ``lokit`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level_str.upper(), logging.INFO))

    # Calling this twice must not duplicate output.
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in _build_handlers(log_file_path, log_to_console):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
