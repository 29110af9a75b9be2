"""Logging setup for the indexer process."""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from staking_indexer.config import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s"
LOG_FILE_NAME = "indexer.log"


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings.

    Always logs to stderr. When ``LOG_DIR`` is set, also writes a log file
    rotated at midnight (one file per day, dated suffix).
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            when="midnight",
            utc=True,
            encoding="utf-8",
        )
        file_handler.suffix = "%Y-%m-%d"
        handlers.append(file_handler)

    logging.basicConfig(
        level=settings.get_logging_level(),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # web3/urllib3 debug output drowns the indexer's own logs.
    for noisy in ("web3", "urllib3", "aiohttp"):
        logging.getLogger(noisy).setLevel(max(settings.get_logging_level(), logging.INFO))
