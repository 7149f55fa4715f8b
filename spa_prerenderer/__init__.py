"""
SPA Prerenderer.

Prerenders the routes of a client-rendered single-page application with a
headless browser and writes the captured markup to disk.
"""
__version__ = "0.1.0"
