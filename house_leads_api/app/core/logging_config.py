"""
Logging configuration for the back-office API.

``setup_logging`` attaches a console handler and, when ``LOG_FILE`` is
set, a file handler to the root logger.  Uvicorn is started with
``log_config=None`` (see ``run.py``), so its loggers propagate to these
handlers.  The per-request access log of uvicorn is kept at WARNING
unless the configured level is DEBUG; application loggers follow the
configured level.
"""

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ACCESS_LOGGER = "uvicorn.access"


def access_log_level(level: int) -> int:
    """Level for uvicorn's access log given the application level."""
    return level if level <= logging.DEBUG else max(level, logging.WARNING)


def setup_logging(level: str = "INFO", logfile: Optional[str] = None) -> None:
    """Configure the root logger and uvicorn's access logger.

    Parameters
    ----------
    level : str
        Logging level name (e.g. ``"DEBUG"``, ``"INFO"``).  Case
        insensitive; unknown names fall back to INFO.
    logfile : Optional[str]
        Path to a file to log messages to.  If omitted or empty, no
        file handler is added.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.getLogger(ACCESS_LOGGER).setLevel(access_log_level(numeric_level))

    logger = logging.getLogger()
    if logger.handlers:
        # Already configured, e.g. by pytest or a second ``create_app`` call.
        return
    logger.setLevel(numeric_level)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if logfile:
        log_path = Path(logfile).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
