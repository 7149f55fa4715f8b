from typing import Callable, Iterable, List, Optional, Union, TYPE_CHECKING

from spa_prerenderer.components.renderer.models import RenderResult
from spa_prerenderer.components.renderer.orchestrator import RenderOrchestrator
from spa_prerenderer.components.storage.file_storage import FileStorage
from spa_prerenderer.core.exceptions import ConfigurationError, PrerenderFrameworkError
from spa_prerenderer.core.logger import get_logger
from spa_prerenderer.core.options import PrerenderOptions

if TYPE_CHECKING:
    from spa_prerenderer.core.config import ConfigurationManager

logger = get_logger(__name__)

PostProcessHook = Callable[[RenderResult], Union[str, RenderResult]]


class PrerenderManager:
    """
    Runs a complete prerender pass: start the server and browser, render the
    routes, optionally post-process the markup, write every route to
    `<output_dir>/<route>/index.html` and shut everything down.

    Rendering is all-or-nothing. Writing is not: every route is written before
    a single StorageError reports the ones that failed.
    """
    def __init__(
        self,
        options: Optional[PrerenderOptions] = None,
        config: Optional['ConfigurationManager'] = None,
        post_process_html: Optional[PostProcessHook] = None,
        orchestrator: Optional[RenderOrchestrator] = None,
        file_storage: Optional[FileStorage] = None,
    ):
        """
        Args:
            options (Optional[PrerenderOptions]): Options for the pass. When None they
                are read from the `prerender` section of `config` (or the global config).
            config (Optional[ConfigurationManager]): Configuration used when `options` is None.
            post_process_html (Optional[PostProcessHook]): Called with each RenderResult;
                returns the html to write (or a replacement RenderResult).
            orchestrator (Optional[RenderOrchestrator]): Defaults to one built from `options`.
            file_storage (Optional[FileStorage]): Defaults to one writing to the output directory.

        Raises:
            ConfigurationError: If no output directory can be determined.
        """
        if options is None:
            if config is None:
                from spa_prerenderer.core.config import config_manager as config
            options = PrerenderOptions.from_config(config)
        self.options = options
        self.post_process_html = post_process_html

        if file_storage is None and not options.resolved_output_dir:
            raise ConfigurationError("Either output_dir or static_dir must be configured.")

        self.orchestrator = orchestrator or RenderOrchestrator(options)
        self.file_storage = file_storage or FileStorage(options.resolved_output_dir)
        logger.info("PrerenderManager initialized.")

    async def run(self, routes: Optional[Iterable[str]] = None) -> List[str]:
        """
        Prerenders `routes` (defaults to the configured routes) and writes them.

        Returns:
            List[str]: Paths of the written files.

        Raises:
            PrerenderFrameworkError: Any rendering, post-processing or storage failure.
                The browser and server are shut down in every case.
        """
        routes = list(routes) if routes is not None else list(self.options.routes)
        logger.info(f"Starting prerender pass for {len(routes)} route(s).")
        try:
            await self.orchestrator.initialize()
            results = await self.orchestrator.render_routes(routes)
            processed = [self._post_process(result) for result in results]
            written = self.file_storage.save_all(processed)
        except PrerenderFrameworkError as e:
            logger.error(f"Unable to prerender all routes! {e}", exc_info=True)
            raise
        finally:
            await self.orchestrator.destroy()

        logger.info(f"Prerender pass finished: {len(written)} file(s) written.")
        return written

    def _post_process(self, result: RenderResult) -> RenderResult:
        if self.post_process_html is None:
            return result
        try:
            processed = self.post_process_html(result)
        except Exception as e:
            raise PrerenderFrameworkError(f"post_process_html failed for route '{result.route}': {e}") from e
        if isinstance(processed, RenderResult):
            return processed
        if not isinstance(processed, str):
            raise PrerenderFrameworkError(
                f"post_process_html must return str or RenderResult for route '{result.route}', "
                f"got {type(processed).__name__}."
            )
        return RenderResult(route=result.route, html=processed)
