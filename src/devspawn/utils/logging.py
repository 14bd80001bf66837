"""Logging utilities."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def run_log_path(log_dir: str, now: Optional[datetime] = None) -> Path:
    """Path of the log file for a run started at ``now``."""
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    return Path(log_dir) / f"devspawn-{stamp}.log"


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None, verbose: bool = False) -> Optional[Path]:
    """Setup logging configuration.

    Everything at DEBUG goes to the run log file when ``log_dir`` is given.
    The terminal handler only shows warnings unless ``verbose`` is set, since
    user facing output is printed through rich. Returns the run log path.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    if verbose:
        console_handler.setLevel(logging.DEBUG)
    else:
        console_handler.setLevel(max(logging.WARNING, getattr(logging, level.upper(), logging.INFO)))
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    log_path = None
    if log_dir:
        log_path = run_log_path(log_dir)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return log_path
