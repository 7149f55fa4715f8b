"""
Static asset server for the built single-page application.

Serves the files of `static_dir` over HTTP and answers every path that is not
an existing file with the index document, so client-side routes resolve to
the application shell. The FastAPI app runs under uvicorn inside the current
event loop on a socket bound by `StaticServer.start`.
"""
import asyncio
import os
import socket
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import FileResponse, JSONResponse

from spa_prerenderer.core.exceptions import ServerError
from spa_prerenderer.core.logger import get_logger

logger = get_logger(__name__)


def create_static_app(static_dir: str, index_path: Optional[str] = None) -> FastAPI:
    """
    Builds the FastAPI application serving `static_dir`.

    Args:
        static_dir (str): Directory holding the built assets.
        index_path (Optional[str]): Document returned for unmatched paths.
            Defaults to `<static_dir>/index.html`.
    """
    root = os.path.abspath(static_dir)
    index_file = os.path.abspath(index_path) if index_path else os.path.join(root, "index.html")

    app = FastAPI(title="SPA Prerenderer static server", docs_url=None, redoc_url=None, openapi_url=None)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error serving {request.method} {request.url}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Unexpected error while serving static asset."},
        )

    @app.get("/{requested_path:path}")
    async def serve(requested_path: str):
        candidate = os.path.abspath(os.path.join(root, requested_path))
        # Directories fall through to the index so stale prerendered pages are never served.
        if candidate.startswith(root + os.sep) and os.path.isfile(candidate):
            return FileResponse(candidate)
        if not os.path.isfile(index_file):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Index document not found.")
        return FileResponse(index_file, media_type="text/html")

    return app


class StaticServer:
    """
    Runs `create_static_app` on `host:port` for the duration of a prerender pass.

    Attributes:
        static_dir (str): Directory being served.
        port (int): Port the server listens on.
        host (str): Interface the server binds to.
    """
    DEFAULT_STARTUP_TIMEOUT = 10.0  # Seconds

    def __init__(
        self,
        static_dir: str,
        port: int,
        host: str = "127.0.0.1",
        index_path: Optional[str] = None,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
    ):
        self.static_dir = static_dir
        self.port = port
        self.host = host
        self.index_path = index_path
        self.startup_timeout = startup_timeout
        self.app = create_static_app(static_dir, index_path)
        self._server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task] = None
        self._socket: Optional[socket.socket] = None

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    async def start(self) -> None:
        """
        Binds the port and waits until uvicorn reports it is serving.

        Raises:
            ServerError: If the directory is missing, the port cannot be bound,
                or the server does not start within `startup_timeout`.
        """
        if not os.path.isdir(self.static_dir):
            raise ServerError(f"Static directory '{self.static_dir}' does not exist.")

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise ServerError(f"Unable to bind static server to {self.host}:{self.port}: {e}")
        self._socket = sock

        config = uvicorn.Config(self.app, log_level="warning", lifespan="off")
        self._server = uvicorn.Server(config)
        self._task = asyncio.ensure_future(self._server.serve(sockets=[sock]))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.startup_timeout
        while not self._server.started:
            if self._task.done() or loop.time() >= deadline:
                await self.stop()
                raise ServerError(f"Static server on {self.base_url} failed to start.")
            await asyncio.sleep(0.05)
        logger.info(f"Serving '{self.static_dir}' on {self.base_url}.")

    async def stop(self) -> None:
        """Stops the server. Safe to call more than once."""
        server, task, sock = self._server, self._task, self._socket
        self._server = self._task = self._socket = None
        if server is not None:
            server.should_exit = True
        if task is not None:
            try:
                await asyncio.wait_for(task, self.startup_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Static server on {self.base_url} did not stop in time; cancelling.")
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            except Exception as e:
                logger.error(f"Static server on {self.base_url} stopped with an error: {e}", exc_info=True)
            else:
                logger.info(f"Static server on {self.base_url} stopped.")
        if sock is not None:
            sock.close()
