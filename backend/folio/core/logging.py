"""
Logging configuration for the API process.
"""

import logging
import sys
from typing import Optional

from folio.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Libraries that log per request or per fetch at INFO
NOISY_LOGGERS = {
    "uvicorn": logging.INFO,
    "sqlalchemy": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "yfinance": logging.WARNING,
    "peewee": logging.WARNING,
    "urllib3": logging.WARNING,
}


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging to stdout at LOG_LEVEL (or ``level``)."""
    level_name = (level or settings.LOG_LEVEL).upper()

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name, lib_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(lib_level)

    if settings.DB_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    logging.getLogger(__name__).debug(
        f"Logging configured at {level_name} for {settings.APP_NAME} ({settings.ENVIRONMENT})"
    )
