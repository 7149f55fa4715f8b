"""
Runs a prerender pass against one supervised browser.

`RenderOrchestrator` owns the static server, the BrowserSession and the
protocol connection. `render_routes` renders every route concurrently in its
own tab and is all-or-nothing: the first failure cancels the sibling renders,
force-closes every tab still open and is re-raised.
"""
import asyncio
import socket
from typing import List, Optional, Sequence, Set, Union

from spa_prerenderer.components.renderer.browser_supervisor import BrowserProcessSupervisor
from spa_prerenderer.components.renderer.capture import CaptureStrategy
from spa_prerenderer.components.renderer.models import BrowserSession, RenderRequest, RenderResult, TabHandle
from spa_prerenderer.components.renderer.protocol_client import Connection, ProtocolClient
from spa_prerenderer.components.renderer.tab_renderer import TabRenderer
from spa_prerenderer.components.server.static_server import StaticServer
from spa_prerenderer.core.exceptions import RendererError
from spa_prerenderer.core.logger import get_logger
from spa_prerenderer.core.options import PrerenderOptions

logger = get_logger(__name__)

DEFAULT_SERVER_PORT = 13010
DEFAULT_RENDERER_PORT = 13020


def allocate_ephemeral_port(host: str = "127.0.0.1", exclude: Sequence[int] = ()) -> Optional[int]:
    """Asks the OS for a free port on `host`. Returns None if none could be obtained."""
    for _ in range(3):
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.bind((host, 0))
                port = sock.getsockname()[1]
        except OSError as e:
            logger.warning(f"Ephemeral port allocation on {host} failed: {e}")
            return None
        if port not in exclude:
            return port
    return None


class RenderOrchestrator:
    """
    Lifecycle owner for one prerender pass.

    Usage:
        async with RenderOrchestrator(options) as orchestrator:
            results = await orchestrator.render_routes(["/", "/about"])
    """

    def __init__(
        self,
        options: PrerenderOptions,
        supervisor: Optional[BrowserProcessSupervisor] = None,
        client: Optional[ProtocolClient] = None,
        capture_strategy: Optional[CaptureStrategy] = None,
        server_factory=StaticServer,
    ):
        self.options = options
        self.supervisor = supervisor or BrowserProcessSupervisor(
            port_ready_timeout=options.port_ready_timeout,
            log_browser_output=options.log_browser_output,
        )
        self.client = client or ProtocolClient()
        self.capture_strategy = capture_strategy or CaptureStrategy()
        self.server_factory = server_factory

        self.server_port: Optional[int] = None
        self.renderer_port: Optional[int] = None
        self.server: Optional[StaticServer] = None
        self.session: Optional[BrowserSession] = None
        self.connection: Optional[Connection] = None
        self._open_tabs: Set[TabHandle] = set()
        self._destroyed = False

    async def __aenter__(self) -> 'RenderOrchestrator':
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.destroy()

    @property
    def base_url(self) -> str:
        return f"http://{self.options.host}:{self.server_port}"

    @property
    def open_tab_count(self) -> int:
        return len(self._open_tabs)

    async def initialize(self) -> None:
        """
        Resolves ports, starts the static server (when `static_dir` is set) and the
        browser, and connects to it. Anything started is released if a later step fails.

        Raises:
            NoBrowserFoundError, LaunchExhaustedError, BrowserConnectionRefusedError, ServerError
        """
        if self.connection is not None:
            raise RendererError("RenderOrchestrator is already initialized.")
        if self._destroyed:
            raise RendererError("RenderOrchestrator has been destroyed; create a new one.")

        host = self.options.host
        self.server_port = self.options.server_port or allocate_ephemeral_port(host) or DEFAULT_SERVER_PORT
        self.renderer_port = (
            self.options.renderer_port
            or allocate_ephemeral_port(host, exclude=[self.server_port])
            or DEFAULT_RENDERER_PORT
        )
        logger.info(f"Using server port {self.server_port} and renderer port {self.renderer_port}.")

        try:
            if self.options.static_dir:
                self.server = self.server_factory(
                    static_dir=self.options.static_dir,
                    port=self.server_port,
                    host=host,
                    index_path=self.options.index_path,
                )
                await self.server.start()

            command = await self.supervisor.resolve_launch_command(self.options.browser_command)
            self.session = await self.supervisor.launch(
                command,
                self.renderer_port,
                self.options.max_launch_retries,
                extra_args=self.options.browser_arguments,
                host=host,
            )
            self.connection = await self.client.connect(host, self.renderer_port)
        except BaseException as e:
            logger.error(f"Prerenderer initialization failed: {e}")
            await self._teardown()
            raise

    def build_request(self, route: str) -> RenderRequest:
        """RenderRequest for `route` using the configured injection and capture options."""
        if not route.startswith("/"):
            route = f"/{route}"
        return RenderRequest(
            route=route,
            navigation_url=f"{self.base_url}{route}",
            injected_globals=dict(self.options.injected_globals),
            injected_global_name=self.options.injected_global_name,
            capture_trigger=self.options.capture_trigger(),
        )

    async def render_routes(self, routes: Sequence[Union[str, RenderRequest]]) -> List[RenderResult]:
        """
        Renders every route concurrently against the running browser.

        Args:
            routes: Route paths or prepared RenderRequests.

        Returns:
            List[RenderResult]: One result per route, in input order.

        Raises:
            RendererError: The first failure; no partial results are returned.
        """
        if self.connection is None:
            raise RendererError("RenderOrchestrator is not initialized. Call initialize() first.")

        requests = [route if isinstance(route, RenderRequest) else self.build_request(route) for route in routes]
        if not requests:
            return []

        semaphore = asyncio.Semaphore(self.options.max_concurrent_tabs) if self.options.max_concurrent_tabs else None
        tasks = [asyncio.ensure_future(self._render_with_retries(request, semaphore)) for request in requests]
        logger.info(f"Rendering {len(tasks)} route(s).")

        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            await self._abort(tasks)
            raise

        failures = [
            task.exception() for task in tasks
            if task in done and not task.cancelled() and task.exception() is not None
        ]
        if failures:
            await self._abort(pending)
            logger.error(f"Unable to prerender all routes: {failures[0]}")
            raise failures[0]

        results = [task.result() for task in tasks]
        logger.info(f"Rendered {len(results)} route(s).")
        return results

    async def _render_with_retries(self, request: RenderRequest, semaphore: Optional[asyncio.Semaphore]) -> RenderResult:
        attempts = self.options.route_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self._render_once(request, semaphore)
            except RendererError as e:
                if attempt >= attempts:
                    raise
                logger.warning(f"Route '{request.route}' failed (attempt {attempt}/{attempts}), retrying: {e}")
        raise RendererError(f"Route '{request.route}' was not rendered.")

    async def _render_once(self, request: RenderRequest, semaphore: Optional[asyncio.Semaphore]) -> RenderResult:
        renderer = TabRenderer(
            self.client,
            self.connection,
            capture_strategy=self.capture_strategy,
            page_load_timeout_ms=self.options.page_load_timeout,
            capture_timeout_ms=self.options.capture_timeout,
            open_tabs=self._open_tabs,
        )
        if semaphore is None:
            return await renderer.render(request)
        async with semaphore:
            return await renderer.render(request)

    async def _abort(self, tasks) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._close_open_tabs()

    async def _close_open_tabs(self) -> None:
        for tab in list(self._open_tabs):
            try:
                await self.client.close_tab(self.connection, tab)
            except Exception as e:
                logger.error(f"Error force-closing tab {tab.target_id}: {e}", exc_info=True)
            finally:
                self._open_tabs.discard(tab)

    async def destroy(self) -> None:
        """Stops the browser and the static server. Idempotent; never raises."""
        if self._destroyed:
            logger.debug("RenderOrchestrator already destroyed.")
            return
        self._destroyed = True
        await self._teardown()

    async def _teardown(self) -> None:
        if self.connection is not None:
            await self._close_open_tabs()
            connection, self.connection = self.connection, None
            try:
                await self.client.disconnect(connection)
            except Exception as e:
                logger.error(f"Error disconnecting from browser: {e}", exc_info=True)

        if self.session is not None:
            session, self.session = self.session, None
            try:
                await self.supervisor.shutdown(session)
            except Exception as e:
                logger.error(f"Error shutting down browser process: {e}", exc_info=True)

        if self.server is not None:
            server, self.server = self.server, None
            try:
                await server.stop()
            except Exception as e:
                logger.error(f"Error stopping static server: {e}", exc_info=True)
