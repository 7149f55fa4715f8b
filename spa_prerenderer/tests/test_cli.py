import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from spa_prerenderer import __main__ as cli
from spa_prerenderer.core.config import ConfigFileNotFoundError
from spa_prerenderer.core.exceptions import LaunchExhaustedError


@pytest.fixture
def cli_mocker():
    """Patches the manager and logging setup used by the command line entry point."""
    manager = MagicMock()
    manager.run = AsyncMock(return_value=["/srv/dist/index.html", "/srv/dist/about/index.html"])
    with patch.object(cli, "PrerenderManager", return_value=manager) as manager_cls, \
            patch.object(cli, "setup_logging") as mock_setup_logging:
        yield manager_cls, manager, mock_setup_logging


def test_parser_accepts_routes_and_overrides():
    args = cli.build_parser().parse_args(
        ["--routes", "/", "/about", "--static-dir", "dist", "-o", "out", "--capture-after-time", "200"]
    )
    assert args.routes == ["/", "/about"]
    assert args.static_dir == "dist"
    assert args.output_dir == "out"
    assert args.capture_after_time == 200
    assert args.env is None


def test_main_prints_written_paths(cli_mocker, capsys):
    manager_cls, manager, mock_setup_logging = cli_mocker

    exit_code = cli.main(["--routes", "/", "about", "--static-dir", "dist", "--capture-after-element-exists", "#app h1"])

    assert exit_code == 0
    options = manager_cls.call_args.kwargs["options"]
    assert options.routes == ["/", "/about"]
    assert options.static_dir == "dist"
    assert options.capture_after_element_exists == "#app h1"
    manager.run.assert_awaited_once()
    mock_setup_logging.assert_called_once()
    assert capsys.readouterr().out.splitlines() == ["/srv/dist/index.html", "/srv/dist/about/index.html"]


def test_main_returns_1_on_render_failure(cli_mocker):
    _, manager, _ = cli_mocker
    manager.run.side_effect = LaunchExhaustedError("chromium", 6)
    assert cli.main(["--static-dir", "dist"]) == 1


def test_main_returns_1_on_conflicting_triggers(cli_mocker):
    manager_cls, _, _ = cli_mocker
    exit_code = cli.main(["--static-dir", "dist", "--capture-after-time", "10", "--capture-after-document-event", "ready"])
    assert exit_code == 1
    manager_cls.assert_not_called()


def test_main_returns_1_on_unknown_environment(cli_mocker):
    with patch.object(cli.config_manager, "reload_config", side_effect=ConfigFileNotFoundError("staging.yaml not found")):
        assert cli.main(["--env", "staging"]) == 1
