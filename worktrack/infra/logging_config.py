"""
Logging setup.

Modules log through `logging.getLogger(__name__)`; this module only wires
handlers: console, a rotating application log, a rotating scheduler log and an
error-only log.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from worktrack.infra.config import Settings, get_settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter,
                      max_bytes: int = 5 * 1024 * 1024, backup_count: int = 3) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(settings: Optional[Settings] = None, console: bool = True) -> Path:
    """
    Configure logging for the timer and KPI services.

    Returns the directory the log files are written to.
    """
    settings = settings or get_settings()
    logs_dir = Path(settings.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # Main application log file (with rotation)
    root_logger.addHandler(
        _rotating_handler(logs_dir / "worktrack.log", level, formatter,
                          max_bytes=10 * 1024 * 1024, backup_count=5)
    )

    # Scheduler runs unattended, so it keeps its own debug-level trail
    scheduler_logger = logging.getLogger('worktrack.services.report_scheduler')
    scheduler_logger.handlers.clear()
    scheduler_logger.addHandler(_rotating_handler(logs_dir / "scheduler.log", logging.DEBUG, formatter))
    scheduler_logger.setLevel(logging.DEBUG)

    # Error-only log file for critical issues
    root_logger.addHandler(
        _rotating_handler(logs_dir / "errors.log", logging.ERROR, formatter, backup_count=5)
    )

    # Suppress noisy third-party loggers
    logging.getLogger('apscheduler').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('aiosqlite').setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured, files in {logs_dir.absolute()}")

    return logs_dir
