"""
Static asset server for the SPA Prerenderer.

Serves the built application over HTTP while routes are being rendered.
"""
from .static_server import StaticServer, create_static_app

__all__ = [
    "StaticServer",
    "create_static_app",
]
