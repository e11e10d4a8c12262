from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, Optional


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# chatty at INFO while the API serves status polls
QUIET_LOGGERS = ("uvicorn.access",)


def configure_logging(
    verbose: bool = False,
    logger_name: Optional[str] = None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Route orchestrator logging to stdout and, when *log_file* is set, to that file.

    Records carry the thread name, so lines from a run's worker read
    ``run-<run id>``. Output of the external tool never goes through here; it
    lands in the per-phase logs inside each run directory.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT, handlers=handlers, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)

    logger = logging.getLogger(logger_name or "corb_admin")
    logger.debug("Logging at %s%s", logging.getLevelName(level), f" into {log_file}" if log_file else "")
    return logger
