import logging
import sys
import os
from logging.handlers import RotatingFileHandler

DEFAULT_LOG_DIR = "logs"

# Configure logging format
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def log_dir() -> str:
    """Where log files go: DUF_LOG_DIR, else ./logs under the working directory. Created on demand."""
    path = os.environ.get("DUF_LOG_DIR") or os.path.join(os.getcwd(), DEFAULT_LOG_DIR)
    os.makedirs(path, exist_ok=True)
    return path


def setup_logger(name: str, log_file: str = None) -> logging.Logger:
    """
    Set up a logger with both file and console handlers

    Args:
        name: Name of the logger (usually __name__)
        log_file: Optional specific log file name, defaults to module name

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        # Already configured, e.g. module imported through two app instances
        return logger
    logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # Console handler only shows INFO and above, access lines included
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    if log_file is None:
        # Use module name as log file name
        log_file = f"{name.split('.')[-1]}.log"

    file_handler = RotatingFileHandler(
        os.path.join(log_dir(), log_file),
        maxBytes=5*1024*1024,  # 5MB
        backupCount=3,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger
