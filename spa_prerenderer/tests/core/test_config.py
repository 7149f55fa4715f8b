import pytest
import os
import yaml
from unittest.mock import patch

from spa_prerenderer.core.config import ConfigurationManager, ConfigFileNotFoundError, InvalidYamlError, config_manager


@pytest.fixture(scope="function")
def temp_config_files(tmp_path):
    """
    Writes temporary environment YAML files and points the ConfigurationManager
    singleton at them. The real configuration is reloaded afterwards.
    """
    dev_config_content = {
        "logging": {"level": "DEBUG"},
        "prerender": {"routes": ["/", "/about"], "static_dir": "dist_dev", "max_launch_retries": 3},
    }
    prod_config_content = {
        "prerender": {"routes": ["/"], "static_dir": "dist", "browser_command": "chromium"},
    }
    with open(tmp_path / "development.yaml", "w") as f:
        yaml.dump(dev_config_content, f)
    with open(tmp_path / "production.yaml", "w") as f:
        yaml.dump(prod_config_content, f)
    with open(tmp_path / "invalid.yaml", "w") as f:
        f.write("prerender: {routes: ['/'], static_dir: 'dist'")  # Missing closing brace
    with open(tmp_path / "not_dict.yaml", "w") as f:
        yaml.dump(["list", "instead", "of", "dict"], f)

    with patch.object(ConfigurationManager, "CONFIG_DIR", str(tmp_path)):
        yield tmp_path

    config_manager.load_config()


def test_singleton_returns_same_instance():
    assert ConfigurationManager() is ConfigurationManager()
    assert ConfigurationManager() is config_manager


def test_shipped_development_config_has_prerender_section(monkeypatch):
    """The packaged development.yaml loads and carries the prerender defaults."""
    monkeypatch.delenv("APP_ENV", raising=False)
    manager = ConfigurationManager()
    manager.load_config()
    assert manager.current_environment == "development"
    assert manager.get("prerender.max_launch_retries") == 5
    assert manager.get("prerender.injected_global_name") == "__PRERENDER_INJECTED"


def test_load_development_config_default(temp_config_files, monkeypatch):
    """Development configuration is loaded when APP_ENV is not set."""
    monkeypatch.delenv("APP_ENV", raising=False)

    manager = ConfigurationManager()
    manager.load_config()

    assert manager.current_environment == "development"
    assert manager.get("prerender.static_dir") == "dist_dev"
    assert manager.get("prerender.routes") == ["/", "/about"]
    assert manager.get("non_existent_key") is None
    assert manager.get("non_existent_key", "default_val") == "default_val"


def test_load_production_config_env_var(temp_config_files, monkeypatch):
    """APP_ENV selects the environment file."""
    monkeypatch.setenv("APP_ENV", "production")

    manager = ConfigurationManager()
    manager.load_config()

    assert manager.current_environment == "production"
    assert manager.get("prerender.browser_command") == "chromium"


def test_load_config_explicit_env_param(temp_config_files, monkeypatch):
    monkeypatch.setenv("APP_ENV", "development")

    manager = ConfigurationManager()
    manager.load_config(env="production")

    assert manager.current_environment == "production"
    assert manager.get("prerender.static_dir") == "dist"


def test_get_non_existent_nested_value(temp_config_files):
    manager = ConfigurationManager()
    manager.load_config("development")

    assert manager.get("prerender.non_existent_sub_key") is None
    assert manager.get("prerender.routes.deeper", "fallback") == "fallback"
    assert manager.get("completely.made.up.path", "fallback") == "fallback"
    assert config_manager.get("prerender.max_launch_retries") == 3


def test_reload_config(temp_config_files, monkeypatch):
    monkeypatch.setenv("APP_ENV", "development")
    manager = ConfigurationManager()
    manager.load_config()
    assert manager.get("prerender.static_dir") == "dist_dev"

    with open(os.path.join(temp_config_files, "development.yaml"), "w") as f:
        yaml.dump({"prerender": {"static_dir": "reloaded_dist"}}, f)

    manager.reload_config()
    assert manager.get("prerender.static_dir") == "reloaded_dist"

    manager.reload_config(env="production")
    assert manager.current_environment == "production"
    assert manager.get("prerender.static_dir") == "dist"


def test_missing_environment_file(temp_config_files):
    manager = ConfigurationManager()
    with pytest.raises(ConfigFileNotFoundError) as excinfo:
        manager.load_config(env="staging")
    assert "staging.yaml" in str(excinfo.value)


def test_invalid_yaml(temp_config_files):
    manager = ConfigurationManager()
    with pytest.raises(InvalidYamlError):
        manager.load_config(env="invalid")


def test_yaml_that_is_not_a_dictionary(temp_config_files):
    manager = ConfigurationManager()
    with pytest.raises(InvalidYamlError) as excinfo:
        manager.load_config(env="not_dict")
    assert "valid YAML dictionary" in str(excinfo.value)


def test_failed_load_keeps_previous_settings(temp_config_files):
    manager = ConfigurationManager()
    manager.load_config("production")
    with pytest.raises(ConfigFileNotFoundError):
        manager.load_config(env="staging")
    assert manager.current_environment == "production"
    assert manager.get("prerender.browser_command") == "chromium"
