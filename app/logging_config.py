# app/logging_config.py
import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Attach a single stdout handler to the `app` logger.

    Every module logs through `logging.getLogger(__name__)`, so they all
    hang off this logger. Calling this twice does not duplicate handlers.
    """
    if level is None:
        from app.config import get_settings

        level = get_settings().LOG_LEVEL

    logger = logging.getLogger("app")
    logger.setLevel(level.upper())

    if not any(getattr(h, "_connect_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._connect_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    return logger
