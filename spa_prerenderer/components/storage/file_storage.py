"""
File system storage for rendered routes.

This module provides the `FileStorage` class, which writes each rendered route
to `<base_path>/<route>/index.html` and reads it back. `save_all` attempts
every write before reporting failures, so one bad route never prevents the
others from being written.
"""
import os
from typing import Iterable, List, Optional, Tuple, TYPE_CHECKING
from urllib.parse import unquote

from spa_prerenderer.components.renderer.models import RenderResult
from spa_prerenderer.core.exceptions import StorageError
from spa_prerenderer.core.logger import get_logger

if TYPE_CHECKING:
    from spa_prerenderer.core.config import ConfigurationManager

logger = get_logger(__name__)

# --- Custom Storage-Specific Exceptions ---

class FilePathError(StorageError):
    """Raised when a route cannot be mapped to a path inside the output directory."""
    def __init__(self, message: str):
        super().__init__(message=message)

class FileNotFound(FilePathError):
    """Raised when a rendered route file is not found."""
    def __init__(self, path: str):
        super().__init__(f"File not found at path: {path}.")
        self.path = path


class FileStorage:
    """
    Writes rendered routes below an output directory.

    Attributes:
        base_path (str): Absolute output directory.
    """
    INDEX_FILENAME = "index.html"

    def __init__(self, base_path: Optional[str] = None, config: Optional['ConfigurationManager'] = None):
        """
        Args:
            base_path (Optional[str]): Output directory. When None it is read from
                `prerender.output_dir` (falling back to `prerender.static_dir`) in `config`.
            config (Optional[ConfigurationManager]): Configuration used when `base_path` is None.

        Raises:
            StorageError: If no output directory is known or it cannot be created.
        """
        if base_path is None and config is not None:
            base_path = config.get('prerender.output_dir') or config.get('prerender.static_dir')
        if not base_path:
            raise StorageError("No output directory configured (set output_dir or static_dir).")

        self.base_path = os.path.abspath(base_path)
        try:
            os.makedirs(self.base_path, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create or access output directory '{self.base_path}': {e}", exc_info=True)
            raise StorageError(f"Failed to create or access output directory '{self.base_path}': {e}")
        logger.info(f"FileStorage writing rendered routes to: {self.base_path}")

    def output_path_for(self, route: str) -> str:
        """
        Returns `<base_path>/<route>/index.html` for `route`.

        Raises:
            FilePathError: If the route would escape the output directory.
        """
        parts = [unquote(part) for part in route.split("/") if part]
        if any(part in (".", "..") or os.sep in part for part in parts):
            raise FilePathError(f"Route '{route}' does not map to a path inside '{self.base_path}'.")
        return os.path.join(self.base_path, *parts, self.INDEX_FILENAME)

    def save_rendered_route(self, result: RenderResult) -> str:
        """
        Writes one rendered route, creating directories as needed.

        Returns:
            str: The full path of the written file.

        Raises:
            FilePathError: If the route is not a valid output path.
            StorageError: For IO/OS errors.
        """
        full_path = self.output_path_for(result.route)
        try:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, 'w', encoding='utf-8') as f:
                f.write(result.html.strip())
        except OSError as e:
            logger.error(f"Unable to write rendered route '{result.route}' to '{full_path}': {e}", exc_info=True)
            raise StorageError(f"Unable to write rendered route '{result.route}' to file '{full_path}': {e}")
        logger.info(f"Rendered route '{result.route}' saved to {full_path}")
        return full_path

    def save_all(self, results: Iterable[RenderResult]) -> List[str]:
        """
        Writes every result, then raises once if any write failed.

        Returns:
            List[str]: Paths of the written files, in input order.

        Raises:
            StorageError: Listing every route that could not be written.
        """
        written: List[str] = []
        failures: List[Tuple[str, StorageError]] = []
        for result in results:
            try:
                written.append(self.save_rendered_route(result))
            except StorageError as e:
                failures.append((result.route, e))

        if failures:
            details = "; ".join(f"{route}: {error.message}" for route, error in failures)
            raise StorageError(f"{len(failures)} rendered route(s) could not be written: {details}")
        return written

    def load_rendered_route(self, route: str) -> str:
        """
        Reads back a previously written route.

        Raises:
            FileNotFound: If the route has not been written.
            StorageError: For other IO/OS errors.
        """
        full_path = self.output_path_for(route)
        if not os.path.exists(full_path):
            raise FileNotFound(path=full_path)
        try:
            with open(full_path, 'r', encoding='utf-8') as f:
                return f.read()
        except OSError as e:
            raise StorageError(f"Failed to read rendered route from '{full_path}': {e}")
