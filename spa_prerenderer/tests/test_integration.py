"""
End-to-end prerendering against a locally installed Chromium-family browser.

Skipped when no browser can be found.
"""
import pytest
import pytest_asyncio

from spa_prerenderer.components.renderer.browser_supervisor import BrowserProcessSupervisor
from spa_prerenderer.core.exceptions import NoBrowserFoundError
from spa_prerenderer.core.manager import PrerenderManager
from spa_prerenderer.core.options import PrerenderOptions

APP_HTML = """<!DOCTYPE html>
<html>
<head><title>Two page app</title></head>
<body>
<div id="app"></div>
<script>
  var pages = {"/": "Home page", "/about": "About page"};
  var injected = window.__PRERENDER_INJECTED || {};
  document.documentElement.setAttribute("data-visitor", injected.visitor || "nobody");
  setTimeout(function () {
    var heading = document.createElement("h1");
    heading.className = "rendered";
    heading.textContent = (pages[location.pathname] || "Not found") + " for " + (injected.visitor || "nobody");
    document.getElementById("app").appendChild(heading);
    document.dispatchEvent(new Event("app-rendered"));
  }, 50);
</script>
</body>
</html>
"""

pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def browser_command():
    try:
        return await BrowserProcessSupervisor(probe_timeout=5.0).resolve_launch_command()
    except NoBrowserFoundError as e:
        pytest.skip(str(e))


@pytest.fixture
def app_dir(tmp_path):
    (tmp_path / "index.html").write_text(APP_HTML, encoding="utf-8")
    return tmp_path


@pytest.mark.asyncio
@pytest.mark.parametrize("trigger", [
    {"capture_after_element_exists": "h1.rendered"},
    {"capture_after_document_event": "app-rendered"},
    {"capture_after_time": 500},
])
async def test_two_page_app_is_prerendered(browser_command, app_dir, trigger):
    options = PrerenderOptions(
        routes=["/", "/about"],
        static_dir=str(app_dir),
        browser_command=browser_command,
        browser_arguments=["--no-sandbox", "--disable-gpu"],
        injected_globals={"visitor": "crawler"},
        **trigger,
    )

    written = await PrerenderManager(options=options).run()

    assert written == [str(app_dir / "index.html"), str(app_dir / "about" / "index.html")]
    home = (app_dir / "index.html").read_text(encoding="utf-8")
    about = (app_dir / "about" / "index.html").read_text(encoding="utf-8")
    assert home.startswith("<!DOCTYPE html>")
    assert "Home page for crawler" in home
    assert "About page for crawler" in about
    assert 'data-visitor="crawler"' in home


@pytest.mark.asyncio
async def test_zero_delay_captures_document_after_load(browser_command, app_dir):
    options = PrerenderOptions(
        routes=["/about"],
        static_dir=str(app_dir),
        browser_command=browser_command,
        browser_arguments=["--no-sandbox", "--disable-gpu"],
        injected_globals={"visitor": "crawler"},
        capture_after_time=0,
    )

    await PrerenderManager(options=options).run()

    about = (app_dir / "about" / "index.html").read_text(encoding="utf-8")
    assert about.startswith("<!DOCTYPE html>")
    assert 'data-visitor="crawler"' in about
    assert '<div id="app">' in about
