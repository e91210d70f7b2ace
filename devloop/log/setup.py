import sys
import logging
from pathlib import Path
from typing import Optional, Union

from devloop.local.config import effective_settings as config


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and raw subprocess logs."""

    FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'

    def __init__(self) -> None:
        super().__init__(self.FORMAT)

    def format(self, record):
        # Output of the supervised program is printed as it was written.
        # The 'proc.' prefix is used by log_process_output in process_utils.py
        if record.name.startswith('proc.'):
            return record.getMessage()
        return super().format(record)


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def setup_logging(console_level: Union[int, str, None] = None, log_file: Optional[Path] = None) -> None:
    """
    Configures the root logger for devloop.
    This sets up the console handler and, if configured, a file handler,
    clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output; defaults to LOG_LEVEL.
    :param log_file: Optional log file; defaults to LOG_FILE_PATH.
    """
    console_level = _resolve_level(config.LOG_LEVEL if console_level is None else console_level)
    log_file = config.LOG_FILE_PATH if log_file is None else log_file

    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    # --- File Handler (conditional) ---
    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(MainFormatter())
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.error(f"Failed to initialize file logging handler for '{log_file}': {e}. Logging to file will be disabled.")

    # watchdog is chatty at DEBUG.
    logging.getLogger("watchdog").setLevel(logging.INFO)
