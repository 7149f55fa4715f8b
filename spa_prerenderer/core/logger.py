"""
Centralized logging setup for the SPA Prerenderer.

This module configures and hands out logger instances for the whole package.
Logging settings are read from the `logging` section of the YAML
configuration through `ConfigurationManager`, supporting console and
rotating file handlers.

Key Functions:
- `setup_logging()`: Initializes the logging system from configuration.
                     Called once by entry points (CLI, PrerenderManager users).
- `get_logger(name)`: Returns a logger for a module, initializing logging
                      with fallbacks when nothing has configured it yet.
"""
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict, Any

from spa_prerenderer.core.config import ConfigurationManager

# PROJECT_ROOT: Absolute path of the repository root; relative log file paths resolve against it.
# spa_prerenderer/core/logger.py -> repository root
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s - %(message)s"

_logging_initialized = False


def setup_logging(config: Optional[ConfigurationManager] = None, force: bool = False) -> None:
    """
    Sets up centralized logging using the 'logging' section of the configuration.

    Configures the root logger with console and/or rotating file handlers as
    described by the configuration, falling back to `logging.basicConfig` if the
    configuration is missing or incomplete.

    Args:
        config (Optional[ConfigurationManager]): Configuration manager to read settings from.
            If None, the global `config_manager` is used.
        force (bool): Re-run the setup even if logging was already initialized
            (used by the CLI after switching environments).
    """
    global _logging_initialized
    if _logging_initialized and not force:
        logging.getLogger(__name__).debug("setup_logging: Already initialized.")
        return

    current_config = config
    if current_config is None:
        from spa_prerenderer.core.config import config_manager as global_config_manager
        current_config = global_config_manager

    log_settings: Optional[Dict[str, Any]] = current_config.get("logging")

    if not log_settings:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        logging.warning("Logging setup: 'logging' section not found in configuration. Using basicConfig.")
        _logging_initialized = True
        return

    log_level_str = str(log_settings.get("level", "INFO")).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    log_format = log_settings.get("format", DEFAULT_LOG_FORMAT)

    root_logger = logging.getLogger()

    # Drop handlers added by earlier setups or by basicConfig to avoid duplicate lines.
    if root_logger.hasHandlers():
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

    root_logger.setLevel(log_level)
    formatter = logging.Formatter(log_format)

    handlers_settings = log_settings.get("handlers", {}) or {}

    console_handler_settings = handlers_settings.get("console", {}) or {}
    if console_handler_settings.get("enabled", False):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    file_handler_settings = handlers_settings.get("file", {}) or {}
    log_file_path_absolute = None
    if file_handler_settings.get("enabled", False):
        log_file_path = file_handler_settings.get("path", "logs/spa_prerenderer.log")
        log_file_path_absolute = log_file_path if os.path.isabs(log_file_path) else os.path.join(PROJECT_ROOT, log_file_path)

        max_bytes = int(file_handler_settings.get("max_bytes", 10 * 1024 * 1024))
        backup_count = int(file_handler_settings.get("backup_count", 5))

        try:
            os.makedirs(os.path.dirname(log_file_path_absolute), exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=log_file_path_absolute,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            logging.error(f"Logging setup: Failed to configure file logging at '{log_file_path_absolute}': {e}. File logging disabled.", exc_info=True)

    _logging_initialized = True
    logging.info(f"Logging system initialized. Level: {log_level_str}.")
    if log_file_path_absolute:
        logging.debug(f"File logging handler enabled at path: {log_file_path_absolute}")


def get_logger(name: str) -> logging.Logger:
    """
    Retrieves a logger instance with the specified name.

    Ensures `setup_logging()` has run at least once before a logger is handed
    out, so modules can safely call this at import time.

    Args:
        name (str): The name for the logger, typically `__name__` of the calling module.

    Returns:
        logging.Logger: An instance of `logging.Logger`.
    """
    if not _logging_initialized:
        setup_logging()

    return logging.getLogger(name)
