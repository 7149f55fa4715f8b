"""
Storage component for the SPA Prerenderer.

This sub-package writes rendered routes to the output directory.
"""
from .file_storage import (
    FileStorage,
    FilePathError,
    FileNotFound,
)

__all__ = [
    "FileStorage",
    "FilePathError",
    "FileNotFound",
]
