"""
Renderer component for the SPA Prerenderer.

This sub-package drives a headless browser over its remote-debugging protocol:
it supervises the browser process, renders each route in its own tab and
decides when a page is ready to be captured.
"""
from .models import (
    AfterDelay,
    AfterDocumentEvent,
    AfterElementExists,
    BrowserSession,
    CaptureTrigger,
    Immediate,
    RenderRequest,
    RenderResult,
    TabHandle,
)
from .capture import CaptureStrategy, CapturedDocument
from .protocol_client import Connection, ProtocolClient
from .browser_supervisor import BrowserProcessSupervisor
from .tab_renderer import TabRenderer, TabState
from .orchestrator import RenderOrchestrator

__all__ = [
    "AfterDelay",
    "AfterDocumentEvent",
    "AfterElementExists",
    "BrowserSession",
    "CaptureTrigger",
    "Immediate",
    "RenderRequest",
    "RenderResult",
    "TabHandle",
    "CaptureStrategy",
    "CapturedDocument",
    "Connection",
    "ProtocolClient",
    "BrowserProcessSupervisor",
    "TabRenderer",
    "TabState",
    "RenderOrchestrator",
]
