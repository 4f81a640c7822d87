"""
Centralized logging configuration for streampump.

Pumped bytes are the program's output, so log records never share stdout
with them.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "streampump"

_handlers: list = []

def setup_logger(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    log_format: str = "%(asctime)s - %(name)s [%(threadName)s] - %(levelname)s - %(message)s",
) -> logging.Logger:
    """
    Configure the ``streampump`` logger tree.

    Calling it again replaces the handlers installed by the previous call, so
    repeated CLI runs in one process do not duplicate records.

    Args:
        log_level: Logging level name; unknown names fall back to INFO
        log_file: Optional path to log file. If None, logs only to stderr
        log_format: Format string; includes the thread name since every pump
            logs from its own thread

    Returns:
        The configured ``streampump`` logger
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    while _handlers:
        old = _handlers.pop()
        root_logger.removeHandler(old)
        old.close()

    formatter = logging.Formatter(log_format)
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
        _handlers.append(handler)
    return root_logger

def get_logger(name: str) -> logging.Logger:
    """Logger under the ``streampump`` namespace, e.g. ``streampump.pumper``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
