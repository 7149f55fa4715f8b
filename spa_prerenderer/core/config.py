"""
Environment-selected YAML settings for the prerenderer.

`config/<env>.yaml` is chosen by the `env` argument, then `APP_ENV`, then
"development". The file holds a `logging` section (read by `core.logger`) and
a `prerender` section (validated by `PrerenderOptions.from_config`).
"""
import logging
import os
import yaml
from typing import Any, Dict, Optional

CONFIG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "config")
DEFAULT_ENV = "development"

# core.logger imports this module, so it cannot use get_logger.
_log = logging.getLogger(__name__)


class ConfigError(Exception):
    """Base class for errors loading an environment file."""

class ConfigFileNotFoundError(ConfigError):
    pass

class InvalidYamlError(ConfigError):
    pass


def _read_environment_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigFileNotFoundError(f"No environment file at '{path}'.")
    except yaml.YAMLError as e:
        raise InvalidYamlError(f"Error parsing YAML in '{path}': {e}")
    if not isinstance(loaded, dict):
        raise InvalidYamlError(f"'{path}' does not contain a valid YAML dictionary.")
    return loaded


class ConfigurationManager:
    """
    Process-wide holder of the active environment's settings.

    Instantiating it always returns the same object; the first instantiation
    loads the environment file.
    """
    _instance: Optional['ConfigurationManager'] = None
    _config: Dict[str, Any] = {}
    _current_env: str = ""
    CONFIG_DIR: str = CONFIG_DIR

    def __new__(cls) -> 'ConfigurationManager':
        if cls._instance is None:
            cls._instance = super(ConfigurationManager, cls).__new__(cls)
            cls._instance.load_config()
        return cls._instance

    def load_config(self, env: Optional[str] = None) -> None:
        """
        Replaces the active settings with those of `env`.

        Raises:
            ConfigFileNotFoundError: If `<CONFIG_DIR>/<env>.yaml` does not exist.
            InvalidYamlError: If it is malformed or not a mapping.
        """
        env = env or os.getenv("APP_ENV", DEFAULT_ENV)
        self._config = _read_environment_file(os.path.join(self.CONFIG_DIR, f"{env}.yaml"))
        self._current_env = env

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Value at the dotted `key` (e.g. "prerender.routes"), or `default`."""
        value: Any = self._config
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    def reload_config(self, env: Optional[str] = None) -> None:
        """Re-reads the active environment, or switches to `env`."""
        previous = self._current_env
        self.load_config(env or previous)
        _log.info(f"Configuration reloaded: '{previous}' -> '{self._current_env}'.")

    @property
    def current_environment(self) -> str:
        return self._current_env


config_manager = ConfigurationManager()
