"""Logging configuration for the Ralph loop."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def setup_logging(log_file: Path, level: int = logging.INFO) -> logging.Logger:
    """Configure logging to both stdout and a rotating file."""
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("ralph")
    logger.setLevel(level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=1_000_000,
        backupCount=5,
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger


def log_banner(logger: logging.Logger, title: str, rows: list[tuple[str, str]]) -> None:
    """Log a boxed banner: a title line followed by aligned key/value rows."""
    width = max([len(title)] + [len(key) + len(value) + 2 for key, value in rows])
    logger.info("=" * (width + 4))
    logger.info(f"  {title}")
    logger.info("=" * (width + 4))
    label_width = max((len(key) for key, _ in rows), default=0)
    for key, value in rows:
        logger.info(f"  {key + ':':<{label_width + 1}} {value}")
    logger.info("=" * (width + 4))
