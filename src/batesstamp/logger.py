# src/batesstamp/logger.py

import logging
import sys
from pathlib import Path
from multiprocessing import Queue as MPQueue # The process-safe queue for workers
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from typing import Union, Optional

# --- Custom Log Level for Progress ---
PROGRESS = 25
logging.addLevelName(PROGRESS, "PROGRESS")

def progress(self, msg, *args, **kwargs):
    if self.isEnabledFor(PROGRESS):
        self._log(PROGRESS, msg, args, **kwargs)

logging.Logger.progress = progress

# --- Custom Filters ---
class ExcludeLevelFilter(logging.Filter):
    def __init__(self, levelno: int):
        super().__init__()
        self.levelno = levelno
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno != self.levelno

# --- Main Configuration Function ---
def setup_logging(
    log_queue: MPQueue,
    *,
    level: int = logging.INFO,
    file_path: Optional[Union[str, Path]] = None,
    file_level: Optional[int] = None,
    console: bool = True,
) -> QueueListener:
    """
    Sets up the logging listener architecture.

    Args:
        log_queue: The process-safe queue that the CLI process and every forked worker log to.
        level: The base logging level for console output.
        file_path: Path to the persistent log file.
        file_level: The logging level for the file.
        console: Whether to echo records (progress included) to stderr.

    Returns:
        A QueueListener instance. You must call .start() on it.
    """
    handlers = []

    # File handler
    if file_path:
        fp = Path(file_path)
        fp.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(fp, maxBytes=5*1024*1024, backupCount=2, encoding="utf-8")
        fh.setLevel(file_level if file_level is not None else level)
        fh.setFormatter(logging.Formatter("%(asctime)s | %(processName)-15s | %(levelname)-8s | %(message)s"))
        fh.addFilter(ExcludeLevelFilter(PROGRESS))
        handlers.append(fh)

    # Console handler
    if console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(level)
        ch.setFormatter(logging.Formatter("%(levelname)-8s %(message)s"))
        handlers.append(ch)

    # The listener pulls from the process-safe queue and pushes to the configured handlers.
    listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
    return listener

def configure_worker_logging(log_queue: MPQueue):
    """
    Routes the batesstamp logger of the current process into `log_queue`.
    Called in the CLI process and again in each forked worker, which
    otherwise keeps whatever handlers it inherited from its parent.
    """
    logger = logging.getLogger("batesstamp")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # Remove any handlers that may have been inherited from the parent process
    logger.handlers.clear()

    qh = QueueHandler(log_queue)
    logger.addHandler(qh)

def restore_logging():
    """Undo configure_worker_logging once the log queue is gone."""
    logger = logging.getLogger("batesstamp")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
