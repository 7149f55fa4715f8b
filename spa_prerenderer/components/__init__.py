"""
Components sub-package for the SPA Prerenderer.

This package contains the building blocks of a prerender pass: the browser
renderer, the static asset server and the output storage.
"""

from .renderer.orchestrator import RenderOrchestrator
from .server.static_server import StaticServer
from .storage.file_storage import FileStorage, FilePathError, FileNotFound

__all__ = [
    "RenderOrchestrator",
    "StaticServer",
    "FileStorage",
    "FilePathError",
    "FileNotFound",
]
