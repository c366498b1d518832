"""
Centralized logging configuration for the tender sync backend
"""
import logging
import sys
from datetime import datetime
import os

# Create logs directory if it doesn't exist
LOGS_DIR = os.getenv("LOG_DIR") or os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logs"
)
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "1").lower() not in {"0", "false", "off", "no"}

# Define log format
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Create formatters
formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

# Console handler
console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.INFO)
console_handler.setFormatter(formatter)


def _file_handler(prefix: str, level: int) -> logging.Handler | None:
    if not LOG_TO_FILE:
        return None
    os.makedirs(LOGS_DIR, exist_ok=True)
    path = os.path.join(LOGS_DIR, f"{prefix}_{datetime.now().strftime('%Y%m%d')}.log")
    handler = logging.FileHandler(path, encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


# File handlers - application, errors, worker and sync pipeline logs
file_handler = _file_handler("app", logging.DEBUG)
error_handler = _file_handler("error", logging.ERROR)
worker_handler = _file_handler("worker", logging.DEBUG)
sync_handler = _file_handler("sync", logging.DEBUG)


def setup_logger(name: str, log_type: str = "app") -> logging.Logger:
    """
    Setup and return a logger with appropriate handlers

    Args:
        name: Logger name (usually __name__ from calling module)
        log_type: Type of log - "app", "worker", "sync"

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only add handlers if not already added (prevents duplicate logs)
    if not logger.handlers:
        logger.setLevel(logging.DEBUG)

        # All loggers get console and error handlers
        logger.addHandler(console_handler)
        if error_handler:
            logger.addHandler(error_handler)

        # Add specific file handler based on type
        if log_type == "worker":
            specific = worker_handler
        elif log_type == "sync":
            specific = sync_handler
        else:
            specific = file_handler
        if specific:
            logger.addHandler(specific)

    return logger


def get_logger(name: str, log_type: str = "app") -> logging.Logger:
    """Get or create a logger - convenience wrapper"""
    return setup_logger(name, log_type)
