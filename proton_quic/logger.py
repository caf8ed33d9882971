import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from proton_quic.settings import LOG_LEVEL, ENABLE_CONSOLE_LOG, LOG_TO_FILE

Logger = logging.Logger


class SafeStreamHandler(logging.StreamHandler):
    """
    A StreamHandler that suppresses BlockingIOError during stdout congestion.

    The REPL and the channel loops share stdout; when the terminal stops
    draining, the record is dropped instead of crashing the event loop.
    """
    def emit(self, record):
        try:
            super().emit(record)
        except BlockingIOError:
            pass


# Log formatting style
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_CONSOLE = "\033[92m%(asctime)s\033[0m - \033[94m%(name)s\033[0m - %(levelname)s - %(message)s"

DEFAULT_MAX_FILE_SIZE = 1_000_000
DEFAULT_BACKUP_COUNT = 3


def _resolve_level(level: Any) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def get_logger(name: str) -> Logger:
    """
    Return a bare logger with the level taken from settings.
    Handlers are attached later by `configure_logger` (or `setup_logger`).
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(LOG_LEVEL))
    return logger


def configure_logger(logger: Logger, logger_cfg: Optional[dict[str, Any]] = None) -> Logger:
    """
    Attach handlers to `logger` following the "logger" section of a config file.

    Recognized keys (all optional, defaults come from settings/.env):
      - log_level: "DEBUG" | "INFO" | ...
      - enable_console_log: bool
      - log_file_path: str, directory for "<name>.log"; "" means current dir
      - log_to_file: bool
      - max_file_size: int, bytes before rotation
      - backup_count: int, rotated files kept
    """
    logger_cfg = logger_cfg or {}
    logger.propagate = False

    logger.setLevel(_resolve_level(logger_cfg.get("log_level", LOG_LEVEL)))

    # Reconfiguring replaces whatever was attached before
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if logger_cfg.get("enable_console_log", ENABLE_CONSOLE_LOG):
        console_handler = SafeStreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT_CONSOLE))
        logger.addHandler(console_handler)

    if logger_cfg.get("log_to_file", LOG_TO_FILE):
        # e.g. "proton.server" becomes "proton_server.log"
        safe_name = logger.name.replace('.', '_').replace(':', '_')
        directory = logger_cfg.get("log_file_path") or "."
        file_handler = RotatingFileHandler(
            f"{directory.rstrip('/')}/{safe_name}.log",
            maxBytes=logger_cfg.get("max_file_size", DEFAULT_MAX_FILE_SIZE),
            backupCount=logger_cfg.get("backup_count", DEFAULT_BACKUP_COUNT),
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def setup_logger(name: str) -> Logger:
    # Get or create a logger instance with the given name
    logger = get_logger(name)

    # Prevent adding duplicate handlers if logger was already set up
    if not logger.handlers:
        configure_logger(logger)

    return logger
