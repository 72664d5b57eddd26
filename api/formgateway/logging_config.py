import logging
import logging.handlers
import os
from typing import Optional

from .config import LogFileConfig

LOG_FORMAT = "%(asctime)s %(name)-28s %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(log_file: LogFileConfig, level: Optional[str] = None) -> None:
    """
    Send gateway logs to stderr and, when ``[LogFile]`` names a file, to that
    file as well. ``WatchedFileHandler`` reopens the file after logrotate
    moves it.
    """
    log_level = getattr(logging, (level or log_file.level or "INFO").upper(), logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    logger = logging.getLogger("formgateway")
    logger.setLevel(log_level)
    logger.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file.filename:
        filename = os.path.join(log_file.path, log_file.filename)
        file_handler = logging.handlers.WatchedFileHandler(filename, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        logger.info("Logging to %s", filename)
