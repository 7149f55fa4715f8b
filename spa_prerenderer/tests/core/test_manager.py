import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from spa_prerenderer.components.renderer.models import RenderResult
from spa_prerenderer.core.exceptions import (
    ConfigurationError,
    EvaluationError,
    LaunchExhaustedError,
    PrerenderFrameworkError,
    StorageError,
)
from spa_prerenderer.core.manager import PrerenderManager
from spa_prerenderer.core.options import PrerenderOptions


@pytest.fixture(autouse=True)
def mock_manager_logger():
    with patch('spa_prerenderer.core.manager.logger', MagicMock()) as mock_log:
        yield mock_log


@pytest.fixture
def manager_mocker():
    """PrerenderManager wired to a mocked orchestrator and storage."""
    orchestrator = AsyncMock()
    orchestrator.render_routes.return_value = [
        RenderResult(route="/", html="<!DOCTYPE html><html><body>home</body></html>"),
        RenderResult(route="/about", html="<!DOCTYPE html><html><body>about</body></html>"),
    ]
    storage = MagicMock()
    storage.save_all.side_effect = lambda results: [f"/out{r.route.rstrip('/')}/index.html" for r in results]
    options = PrerenderOptions(routes=["/", "/about"], static_dir="dist")
    manager = PrerenderManager(options=options, orchestrator=orchestrator, file_storage=storage)
    return manager, orchestrator, storage


@pytest.mark.asyncio
async def test_run_success_flow(manager_mocker):
    manager, orchestrator, storage = manager_mocker

    written = await manager.run()

    orchestrator.initialize.assert_awaited_once()
    orchestrator.render_routes.assert_awaited_once_with(["/", "/about"])
    storage.save_all.assert_called_once()
    assert [r.route for r in storage.save_all.call_args.args[0]] == ["/", "/about"]
    orchestrator.destroy.assert_awaited_once()
    assert written == ["/out/index.html", "/out/about/index.html"]


@pytest.mark.asyncio
async def test_run_with_explicit_routes(manager_mocker):
    manager, orchestrator, _ = manager_mocker
    await manager.run(routes=["/contact"])
    orchestrator.render_routes.assert_awaited_once_with(["/contact"])


@pytest.mark.asyncio
async def test_post_process_hook_replaces_html(manager_mocker):
    manager, _, storage = manager_mocker
    manager.post_process_html = lambda result: result.html.replace("<body>", f"<body data-route=\"{result.route}\">")

    await manager.run()

    saved = storage.save_all.call_args.args[0]
    assert saved[1].html == '<!DOCTYPE html><html><body data-route="/about">about</body></html>'
    assert saved[1].route == "/about"


@pytest.mark.asyncio
async def test_post_process_hook_failure_is_reported_and_cleans_up(manager_mocker):
    manager, orchestrator, storage = manager_mocker

    def broken_hook(result):
        raise ValueError("boom")

    manager.post_process_html = broken_hook
    with pytest.raises(PrerenderFrameworkError) as excinfo:
        await manager.run()
    assert "post_process_html failed for route '/'" in str(excinfo.value)
    storage.save_all.assert_not_called()
    orchestrator.destroy.assert_awaited_once()


@pytest.mark.asyncio
async def test_render_failure_skips_writes_and_destroys(manager_mocker, mock_manager_logger):
    manager, orchestrator, storage = manager_mocker
    orchestrator.render_routes.side_effect = EvaluationError("Capture payload does not contain an 'html' string.")

    with pytest.raises(EvaluationError):
        await manager.run()

    storage.save_all.assert_not_called()
    orchestrator.destroy.assert_awaited_once()
    assert "Unable to prerender all routes!" in mock_manager_logger.error.call_args.args[0]


@pytest.mark.asyncio
async def test_initialize_failure_still_destroys(manager_mocker):
    manager, orchestrator, _ = manager_mocker
    orchestrator.initialize.side_effect = LaunchExhaustedError("chromium", 6)

    with pytest.raises(LaunchExhaustedError):
        await manager.run()

    orchestrator.render_routes.assert_not_awaited()
    orchestrator.destroy.assert_awaited_once()


@pytest.mark.asyncio
async def test_storage_failure_propagates_after_destroy(manager_mocker):
    manager, orchestrator, storage = manager_mocker
    storage.save_all.side_effect = StorageError("1 rendered route(s) could not be written")

    with pytest.raises(StorageError):
        await manager.run()
    orchestrator.destroy.assert_awaited_once()


def test_missing_output_dir_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        PrerenderManager(options=PrerenderOptions(), orchestrator=AsyncMock())


def test_options_are_read_from_config_when_not_given(tmp_path):
    config = MagicMock()
    config.get.return_value = {"routes": ["/x"], "static_dir": str(tmp_path)}
    manager = PrerenderManager(config=config, orchestrator=AsyncMock())
    assert manager.options.routes == ["/x"]
    assert manager.file_storage.base_path == str(tmp_path)
