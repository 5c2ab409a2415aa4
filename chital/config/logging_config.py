"""Logging setup for Chital."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .settings import settings


def configure_logging(
    level: int = logging.INFO,
    logs_dir: Optional[Path] = None,
) -> None:
    """Install the application log format on stderr and a rotating log file.

    Args:
        level: Root log level
        logs_dir: Directory for chital.log, defaults to ~/.chital/logs
    """
    log_format = (
        "%(asctime)s | "
        "chital | "
        "%(levelname)s | "
        "%(name)s | "
        "%(message)s"
    )

    root = logging.getLogger()
    if root.handlers:
        for h in root.handlers[:]:
            root.removeHandler(h)

    logging.basicConfig(
        level=level,
        format=log_format,
    )

    logs_dir = logs_dir or settings.logs_dir
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            logs_dir / "chital.log",
            maxBytes=1_000_000,
            backupCount=3,
            encoding="utf-8",
        )
    except OSError as e:
        logging.getLogger(__name__).warning("File logging disabled: %s", e)
    else:
        file_handler.setFormatter(logging.Formatter(log_format))
        root.addHandler(file_handler)

    logging.getLogger(__name__).info("Logging initialized")
