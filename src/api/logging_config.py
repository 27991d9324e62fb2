import logging
import os
import sys
from logging.handlers import RotatingFileHandler

from src.config import config


def setup_logging():
    log_format = config.get("logging", "format")
    log_dir = config.get("logging", "log_dir")

    logger = logging.getLogger("portfolio")
    logger.setLevel(config.get("logging", "level", "INFO").upper())

    # Handlers are attached once per process
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(console_handler)

    # File logging is skipped when the log directory cannot be created
    try:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "portfolio.log"),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(log_format))
        logger.addHandler(file_handler)
    except OSError as e:
        logger.warning(f"File logging disabled: {e}")

    # Module loggers under src.* share the same handlers
    package_logger = logging.getLogger("src")
    package_logger.setLevel(logger.level)
    if not package_logger.handlers:
        for handler in logger.handlers:
            package_logger.addHandler(handler)

    return logger


logger = setup_logging()
