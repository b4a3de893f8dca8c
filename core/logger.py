"""
Logging configuration for the learning-resource service.
Provides structured logging with file rotation and console output.
"""
import logging
import os
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional


def setup_logger(
    name: str = "learnhub",
    log_file: Optional[Path] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Set up a logger with both file and console handlers.

    Module loggers created with ``logging.getLogger(__name__)`` propagate to
    the root logger, so the handlers are attached there as well as to the
    named application logger.

    Args:
        name: Logger name
        log_file: Path to log file (if None, only console logging)
        level: Logging level (default: INFO)
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup log files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handlers = []
    file_error = None

    # Console handler (always add)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    # File handler (if log_file specified)
    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as e:
            # Read-only container; keep console logging only
            file_error = e

    for handler in handlers:
        logger.addHandler(handler)

    root = logging.getLogger()
    if not root.handlers:
        root.setLevel(level)
        for handler in handlers:
            root.addHandler(handler)

    if file_error is not None:
        logger.warning(f"File logging disabled ({log_file}): {file_error}")

    return logger


# Create default logger instance
_log_file = os.getenv("LOG_FILE") or str(Path(__file__).parent.parent / "logs" / "app.log")
logger = setup_logger(
    name="learnhub",
    log_file=Path(_log_file),
    level=logging.DEBUG if os.getenv("DEBUG", "false").lower() == "true" else logging.INFO
)
