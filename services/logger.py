# services/logger.py
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from config.settings import LOG_LEVEL, LOG_DIR


class AppLogger:
    """Central logger registry"""

    _loggers = {}

    @classmethod
    def get_logger(cls, name: str = "plot_inventory") -> logging.Logger:
        """Return the named logger, attaching handlers on first use."""
        if name in cls._loggers:
            return cls._loggers[name]

        logger = logging.getLogger(name)
        logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

        # handlers survive module reloads
        if logger.handlers:
            cls._loggers[name] = logger
            return logger

        formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)-8s [%(name)s:%(funcName)s:%(lineno)d] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        # Rotating file: 5 files of 10MB each. Empty LOG_DIR turns it off.
        if LOG_DIR:
            os.makedirs(LOG_DIR, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(LOG_DIR, 'app.log'),
                maxBytes=10*1024*1024,
                backupCount=5
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

        cls._loggers[name] = logger
        return logger


logger = AppLogger.get_logger()


def log_db_operation(operation: str, table: str, success: bool,
                     row_count: Optional[int] = None, error: Optional[str] = None):
    """Record one persistence call in a uniform format."""
    if success:
        msg = f"DB {operation} on {table} succeeded"
        if row_count is not None:
            msg += f" ({row_count} rows)"
        logger.info(msg)
    else:
        logger.error(f"DB {operation} on {table} failed - {error}")
