"""Logging infrastructure for StageFlow.

Provides centralized logging configuration with console output, optional
rotating file output, and ISO 8601 timestamps.
"""

import logging
import logging.handlers
import os

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
MAX_BYTES = 10485760  # 10MB
BACKUP_COUNT = 5


def setup_logger(
    name: str,
    log_dir: str = "/var/log/stageflow",
    level: str = "INFO",
    file_logging: bool = False,
) -> logging.Logger:
    """Set up a logger with a console handler and an optional file handler.

    Child loggers created with ``logging.getLogger(__name__)`` under the
    same dotted prefix inherit these handlers.

    Args:
        name: Logger name (typically the top-level package name)
        log_dir: Directory for log files
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        file_logging: Also write to ``<log_dir>/<name>.log``

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Validate and set log level
    level_upper = level.upper()
    if not hasattr(logging, level_upper):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    logger.setLevel(getattr(logging, level_upper))

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f"{name}.log")
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def configure_from_settings(settings) -> logging.Logger:
    """Configure the ``stageflow`` logger tree from application settings."""
    return setup_logger(
        "stageflow",
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.log_to_file,
    )
