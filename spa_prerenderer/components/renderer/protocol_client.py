"""
Thin client for the browser's remote-debugging protocol (Chrome DevTools Protocol).

Playwright provides the transport: `chromium.connect_over_cdp` attaches to the
already running browser and `BrowserContext.new_cdp_session` gives every tab its
own raw protocol session. All tab operations below are plain CDP commands sent
over that session.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Error as PlaywrightError, Playwright

from spa_prerenderer.components.renderer.models import TabHandle
from spa_prerenderer.core.exceptions import (
    BrowserConnectionRefusedError,
    CaptureTimeoutError,
    EvaluationError,
    NavigationError,
    RendererError,
)
from spa_prerenderer.core.logger import get_logger

logger = get_logger(__name__)


@dataclass(eq=False)
class Connection:
    """A live protocol connection to one browser's debugging endpoint."""
    host: str
    port: int
    playwright: Playwright
    browser: Browser
    context: BrowserContext
    closed: bool = False


class ProtocolClient:
    """
    Opens, drives and closes browser tabs over the remote-debugging protocol.

    Attributes:
        connect_timeout_ms (float): How long `connect` waits for the endpoint to answer.
    """
    DEFAULT_CONNECT_TIMEOUT = 30000  # Milliseconds

    def __init__(self, connect_timeout_ms: float = DEFAULT_CONNECT_TIMEOUT):
        self.connect_timeout_ms = connect_timeout_ms

    async def connect(self, host: str, port: int) -> Connection:
        """
        Attaches to the browser listening on `host:port`.

        Raises:
            BrowserConnectionRefusedError: If the debugging endpoint cannot be reached.
        """
        endpoint = f"http://{host}:{port}"
        logger.debug(f"Connecting to debugging endpoint {endpoint}.")
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.connect_over_cdp(endpoint, timeout=self.connect_timeout_ms)
        except PlaywrightError as e:
            logger.error(f"Connection to {endpoint} refused: {e}")
            await playwright.stop()
            raise BrowserConnectionRefusedError(host, port, e)

        context = browser.contexts[0] if browser.contexts else await browser.new_context()
        logger.info(f"Connected to browser {browser.version} at {endpoint}.")
        return Connection(host=host, port=port, playwright=playwright, browser=browser, context=context)

    async def disconnect(self, connection: Connection) -> None:
        """Drops the connection. Safe to call more than once."""
        if connection.closed:
            return
        connection.closed = True
        try:
            await connection.browser.close()
        except PlaywrightError as e:
            logger.debug(f"Ignoring error while disconnecting from {connection.host}:{connection.port}: {e}")
        try:
            await connection.playwright.stop()
        except PlaywrightError as e:
            logger.debug(f"Ignoring error while stopping the protocol transport: {e}")

    async def open_tab(self, connection: Connection) -> TabHandle:
        """
        Creates a new tab with its own protocol session.

        The returned handle carries a one-shot DOM-content-loaded signal that is
        armed before any navigation can happen.
        """
        page = await connection.context.new_page()
        try:
            session = await connection.context.new_cdp_session(page)
            loaded: 'asyncio.Future[None]' = asyncio.get_running_loop().create_future()

            def _on_dom_content_loaded(_params: Any) -> None:
                if not loaded.done():
                    loaded.set_result(None)

            session.on("Page.domContentEventFired", _on_dom_content_loaded)
            await session.send("Page.enable")
            await session.send("Runtime.enable")
            info = await session.send("Target.getTargetInfo")
        except PlaywrightError as e:
            await self._close_page_quietly(page)
            raise RendererError(f"Failed to open a browser tab: {e}")
        except BaseException:
            # The page is not registered anywhere yet; nobody else can close it.
            await self._close_page_quietly(page)
            raise

        tab = TabHandle(
            target_id=info["targetInfo"]["targetId"],
            page=page,
            session=session,
            dom_content_loaded=loaded,
        )
        logger.debug(f"Opened tab {tab.target_id}.")
        return tab

    async def activate_tab(self, connection: Connection, tab: TabHandle) -> None:
        try:
            await tab.session.send("Target.activateTarget", {"targetId": tab.target_id})
        except PlaywrightError as e:
            raise RendererError(f"Failed to activate tab {tab.target_id}: {e}")

    async def close_tab(self, connection: Connection, tab: TabHandle) -> None:
        """Closes `tab`. Already-closed tabs and sessions are ignored."""
        if tab.closed:
            return
        tab.closed = True
        if not tab.dom_content_loaded.done():
            tab.dom_content_loaded.cancel()
        try:
            await tab.session.detach()
        except PlaywrightError as e:
            logger.debug(f"Session for tab {tab.target_id} already detached: {e}")
        await self._close_page_quietly(tab.page)
        logger.debug(f"Closed tab {tab.target_id}.")

    async def navigate(self, tab: TabHandle, url: str) -> None:
        """
        Navigates `tab` to `url`.

        Raises:
            NavigationError: If the protocol reports a navigation error.
        """
        try:
            reply = await tab.session.send("Page.navigate", {"url": url})
        except PlaywrightError as e:
            raise NavigationError(url, str(e))
        if reply.get("errorText"):
            raise NavigationError(url, reply["errorText"])

    async def await_dom_content_loaded(self, tab: TabHandle, timeout_ms: Optional[float] = None) -> None:
        """
        Waits for the tab's DOMContentLoaded signal.

        Raises:
            CaptureTimeoutError: If `timeout_ms` elapses first.
        """
        try:
            if timeout_ms is None:
                await asyncio.shield(tab.dom_content_loaded)
            else:
                await asyncio.wait_for(asyncio.shield(tab.dom_content_loaded), timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise CaptureTimeoutError(
                f"Tab {tab.target_id} did not fire DOMContentLoaded within {timeout_ms}ms.", timeout_ms
            )

    async def evaluate_expression(self, tab: TabHandle, expression: str, timeout_ms: Optional[float] = None) -> Any:
        """
        Evaluates `expression` in the page and returns its value.

        A promise returned by the expression is awaited before its resolved value
        is returned.

        Raises:
            EvaluationError: If the script throws, the protocol call fails, or the
                result cannot be returned by value.
            CaptureTimeoutError: If `timeout_ms` elapses first.
        """
        params = {"expression": expression, "awaitPromise": True, "returnByValue": True}
        try:
            if timeout_ms is None:
                reply = await tab.session.send("Runtime.evaluate", params)
            else:
                reply = await asyncio.wait_for(tab.session.send("Runtime.evaluate", params), timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise CaptureTimeoutError(f"Evaluation in tab {tab.target_id} did not finish within {timeout_ms}ms.", timeout_ms)
        except PlaywrightError as e:
            raise EvaluationError(f"Runtime.evaluate failed in tab {tab.target_id}: {e}")

        details = reply.get("exceptionDetails")
        if details:
            description = (details.get("exception") or {}).get("description") or details.get("text", "unknown error")
            raise EvaluationError(f"Script threw in tab {tab.target_id}: {description}")

        result = reply.get("result") or {}
        if "value" not in result and result.get("type") != "undefined":
            raise EvaluationError(f"Result of type '{result.get('type')}' could not be serialized by value.")
        return result.get("value")

    async def add_script_for_every_document(self, tab: TabHandle, script_source: str) -> None:
        """
        Registers `script_source` to run before any page script in every document of `tab`.

        Uses `Page.addScriptToEvaluateOnNewDocument`, falling back to the legacy
        `Page.addScriptToEvaluateOnLoad` on browsers that do not support it.
        """
        try:
            await tab.session.send("Page.addScriptToEvaluateOnNewDocument", {"source": script_source})
            return
        except PlaywrightError as e:
            logger.debug(f"addScriptToEvaluateOnNewDocument unsupported, trying legacy command: {e}")
        try:
            await tab.session.send("Page.addScriptToEvaluateOnLoad", {"scriptSource": script_source})
        except PlaywrightError as e:
            raise RendererError(f"Failed to register injection script in tab {tab.target_id}: {e}")

    async def _close_page_quietly(self, page) -> None:
        try:
            await page.close()
        except PlaywrightError as e:
            logger.debug(f"Page already closed: {e}")
