"""
Renders a single route in its own browser tab.

A TabRenderer walks IDLE -> TAB_OPENED -> SCRIPT_INJECTED -> NAVIGATED ->
DOM_LOADED -> CAPTURED. Any error (or cancellation) moves it to FAILED. The
tab is closed on both terminal paths before the result or error leaves
`render`.
"""
import asyncio
import enum
import json
from typing import Any, Mapping, Optional, Set

from spa_prerenderer.components.renderer.capture import CaptureStrategy
from spa_prerenderer.components.renderer.models import AfterDelay, CaptureTrigger, RenderRequest, RenderResult, TabHandle
from spa_prerenderer.components.renderer.protocol_client import Connection, ProtocolClient
from spa_prerenderer.core.exceptions import PrerenderFrameworkError, RendererError
from spa_prerenderer.core.logger import get_logger

logger = get_logger(__name__)


class TabState(enum.Enum):
    IDLE = "idle"
    TAB_OPENED = "tab_opened"
    SCRIPT_INJECTED = "script_injected"
    NAVIGATED = "navigated"
    DOM_LOADED = "dom_loaded"
    CAPTURED = "captured"
    FAILED = "failed"


def build_injection_script(global_name: str, injected_globals: Mapping[str, Any]) -> str:
    """Script assigning `injected_globals` to `window[global_name]`."""
    return "(function () { window[%s] = %s; })();" % (json.dumps(global_name), json.dumps(dict(injected_globals)))


class TabRenderer:
    """
    One-shot renderer for one RenderRequest.

    Args:
        client (ProtocolClient): Protocol client used for every tab operation.
        connection (Connection): Connection to the shared browser session.
        capture_strategy (Optional[CaptureStrategy]): Defaults to a new CaptureStrategy.
        page_load_timeout_ms (Optional[float]): Bound on the DOMContentLoaded wait.
        capture_timeout_ms (Optional[float]): Bound on the capture wait. When None,
            delayed captures are bounded by their delay plus the page load timeout
            and event/element captures are unbounded.
        open_tabs (Optional[Set[TabHandle]]): Registry the tab is added to while open.
    """
    DEFAULT_PAGE_LOAD_TIMEOUT = 30000  # Milliseconds

    def __init__(
        self,
        client: ProtocolClient,
        connection: Connection,
        capture_strategy: Optional[CaptureStrategy] = None,
        page_load_timeout_ms: Optional[float] = DEFAULT_PAGE_LOAD_TIMEOUT,
        capture_timeout_ms: Optional[float] = None,
        open_tabs: Optional[Set[TabHandle]] = None,
    ):
        self.client = client
        self.connection = connection
        self.capture_strategy = capture_strategy or CaptureStrategy()
        self.page_load_timeout_ms = page_load_timeout_ms
        self.capture_timeout_ms = capture_timeout_ms
        self.open_tabs = open_tabs
        self.state = TabState.IDLE
        self.tab: Optional[TabHandle] = None

    async def render(self, request: RenderRequest) -> RenderResult:
        """
        Opens a tab, injects globals, navigates, waits for the capture trigger and
        returns the serialized document.

        Raises:
            RendererError: (or one of its subclasses) if any step fails. Unexpected
                exceptions are wrapped in RendererError.
        """
        if self.state is not TabState.IDLE:
            raise RendererError("A TabRenderer renders exactly one route; create a new one per request.")

        logger.debug(f"Rendering route '{request.route}' from {request.navigation_url}.")
        try:
            self.tab = await self.client.open_tab(self.connection)
            if self.open_tabs is not None:
                self.open_tabs.add(self.tab)
            self._transition(TabState.TAB_OPENED, request)

            await self.client.add_script_for_every_document(
                self.tab, build_injection_script(request.injected_global_name, request.injected_globals)
            )
            self._transition(TabState.SCRIPT_INJECTED, request)

            await self.client.activate_tab(self.connection, self.tab)
            await self.client.navigate(self.tab, request.navigation_url)
            self._transition(TabState.NAVIGATED, request)

            await self.client.await_dom_content_loaded(self.tab, self.page_load_timeout_ms)
            self._transition(TabState.DOM_LOADED, request)

            captured = await self.capture_strategy.capture(
                self.client, self.tab, request.capture_trigger, self._capture_timeout_for(request.capture_trigger)
            )
        except asyncio.CancelledError:
            logger.debug(f"Render of route '{request.route}' cancelled in state {self.state.value}.")
            self._transition(TabState.FAILED, request)
            await self._release_tab()
            raise
        except PrerenderFrameworkError as e:
            logger.error(f"Render of route '{request.route}' failed in state {self.state.value}: {e}")
            self._transition(TabState.FAILED, request)
            await self._release_tab()
            raise
        except Exception as e:
            logger.error(f"Unexpected error rendering route '{request.route}' in state {self.state.value}: {e}", exc_info=True)
            self._transition(TabState.FAILED, request)
            await self._release_tab()
            raise RendererError(f"Unexpected error rendering route '{request.route}': {e}") from e

        self._transition(TabState.CAPTURED, request)
        await self._release_tab()

        route = captured.route or request.route
        if route != request.route:
            logger.info(f"Route '{request.route}' redirected to '{route}' during render.")
        return RenderResult(route=route, html=captured.html)

    def _capture_timeout_for(self, trigger: CaptureTrigger) -> Optional[float]:
        if self.capture_timeout_ms is not None:
            return self.capture_timeout_ms
        if isinstance(trigger, AfterDelay) and self.page_load_timeout_ms is not None:
            return trigger.duration_ms + self.page_load_timeout_ms
        return None

    def _transition(self, state: TabState, request: RenderRequest) -> None:
        logger.debug(f"[{request.route}] {self.state.value} -> {state.value}")
        self.state = state

    async def _release_tab(self) -> None:
        if self.tab is None:
            return
        try:
            await self.client.close_tab(self.connection, self.tab)
        except Exception as e:
            logger.error(f"Error closing tab {self.tab.target_id}: {e}", exc_info=True)
        finally:
            if self.open_tabs is not None:
                self.open_tabs.discard(self.tab)
