"""Package logging: console plus a rotating file under the logs directory."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from mystats.config.settings import Settings

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 3
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s.%(funcName)s:%(lineno)d] - %(message)s"


def setup_logging(
    logger_name: str = "mystats",
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    file_output: bool = True,
) -> logging.Logger:
    """
    Attach handlers to ``logger_name`` once and return it.

    Modules log through ``logging.getLogger(__name__)`` below ``mystats``,
    so ``StatsService.open`` configures the whole package with one call.
    Later calls only adjust the level.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if file_output:
        log_dir = log_dir or Settings.LOGS_DIR
        log_dir.mkdir(parents=True, exist_ok=True)
        file_name = "".join(c if c.isalnum() or c in "_-" else "_" for c in logger_name)
        handler = RotatingFileHandler(
            log_dir / f"{file_name}.log",
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUP_COUNT,
            encoding="utf-8",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
