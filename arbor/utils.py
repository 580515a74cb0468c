import logging
import os
import pathlib
from logging.handlers import RotatingFileHandler
from typing import Optional

import numpy as np

from arbor.const import (
    ARBOR_LOGGING_BACKUP_COUNT,
    ARBOR_LOGGING_FORMAT,
    ARBOR_LOGGING_LOG_LEVEL,
    ARBOR_LOGGING_LOG_PATH_ENV,
    ARBOR_LOGGING_MAX_BYTES,
    ARBOR_MAX_SEED,
)


def _file_handler(log_path: pathlib.Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=ARBOR_LOGGING_MAX_BYTES,
        backupCount=ARBOR_LOGGING_BACKUP_COUNT,
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def get_logger(name: str, level: int = ARBOR_LOGGING_LOG_LEVEL, log_path: pathlib.Path | None = None) -> logging.Logger:
    """
    Module logger writing to the console and, when ``log_path`` is given or the
    ``ARBOR_LOG_PATH`` environment variable is set, to a rotating log file.
    """
    logger = logging.getLogger(name)

    if logger.hasHandlers():
        return logger

    level = level or ARBOR_LOGGING_LOG_LEVEL
    logger.setLevel(level)
    formatter = logging.Formatter(ARBOR_LOGGING_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_path is None and os.environ.get(ARBOR_LOGGING_LOG_PATH_ENV):
        log_path = pathlib.Path(os.environ[ARBOR_LOGGING_LOG_PATH_ENV])
    if log_path:
        logger.addHandler(_file_handler(log_path, level, formatter))

    return logger


def resolve_seed(seed: Optional[int]) -> int:
    """Returns ``seed`` unchanged, or a fresh random seed when it is None."""
    if seed is None:
        return int(np.random.default_rng().integers(0, ARBOR_MAX_SEED))
    return int(seed)
