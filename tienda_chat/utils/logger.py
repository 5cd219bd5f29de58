"""Logging for the tienda_chat package."""
import logging
from logging.handlers import RotatingFileHandler
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"

logger = logging.getLogger("tienda_chat")
if not logger.handlers:
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console)
    logger.setLevel(logging.INFO)


def get_logger():
    return logger


def configure_logging(level: str = "INFO", log_file: str = None):
    """Apply the configured level and, when requested, add a rotating file handler."""
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    if log_file and not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(file_handler)
    return logger


def truncate(text: str, limit: int = 80) -> str:
    """Shorten user content for log lines."""
    if text is None:
        return ""
    text = " ".join(str(text).split())
    return text if len(text) <= limit else text[:limit] + "..."
