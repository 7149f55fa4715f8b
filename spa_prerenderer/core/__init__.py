from .config import config_manager, ConfigurationManager, ConfigError, ConfigFileNotFoundError, InvalidYamlError
from .exceptions import (
    PrerenderFrameworkError,
    ConfigurationError,
    ComponentError,
    RendererError,
    ServerError,
    StorageError,
    NoBrowserFoundError,
    LaunchExhaustedError,
    BrowserConnectionRefusedError,
    EvaluationError,
    NavigationError,
    CaptureTimeoutError,
)
from .logger import setup_logging, get_logger
from .options import PrerenderOptions

__all__ = [
    # Config
    "config_manager",
    "ConfigurationManager",
    "ConfigError",
    "ConfigFileNotFoundError",
    "InvalidYamlError",
    "PrerenderOptions",
    # Logger
    "setup_logging",
    "get_logger",
    # Exceptions
    "PrerenderFrameworkError",
    "ConfigurationError",
    "ComponentError",
    "RendererError",
    "ServerError",
    "StorageError",
    "NoBrowserFoundError",
    "LaunchExhaustedError",
    "BrowserConnectionRefusedError",
    "EvaluationError",
    "NavigationError",
    "CaptureTimeoutError",
]
