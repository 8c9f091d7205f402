import logging
import pathlib
from logging.handlers import RotatingFileHandler

from rfe.const import (
    RFE_LOGGING_BACKUP_COUNT,
    RFE_LOGGING_FORMAT,
    RFE_LOGGING_LOG_LEVEL,
    RFE_LOGGING_MAX_BYTES,
)


def get_logger(name: str, level: int = RFE_LOGGING_LOG_LEVEL, log_path: pathlib.Path | None = None) -> logging.Logger:
    logger = logging.getLogger(name)

    if logger.hasHandlers():
        return logger

    logger.setLevel(level or RFE_LOGGING_LOG_LEVEL)
    formatter = logging.Formatter(RFE_LOGGING_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level or RFE_LOGGING_LOG_LEVEL)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_path:
        if not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)

        rot_file_handler = RotatingFileHandler(
            log_path,
            maxBytes=RFE_LOGGING_MAX_BYTES,
            backupCount=RFE_LOGGING_BACKUP_COUNT,
        )
        rot_file_handler.setLevel(level or RFE_LOGGING_LOG_LEVEL)
        rot_file_handler.setFormatter(formatter)
        logger.addHandler(rot_file_handler)

    return logger
