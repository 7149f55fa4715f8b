"""
Value types shared by the renderer component.

`CaptureTrigger` is a closed union of four frozen dataclasses; `CaptureStrategy`
is the single place that dispatches on it.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union, TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.async_api import CDPSession, Page


# --- Capture triggers ---

@dataclass(frozen=True)
class Immediate:
    """Serialize the document as soon as the capture script runs."""


@dataclass(frozen=True)
class AfterDocumentEvent:
    """Serialize the first time `event_name` is dispatched on `document`."""
    event_name: str


@dataclass(frozen=True)
class AfterElementExists:
    """Serialize once `document.querySelector(selector)` matches something."""
    selector: str


@dataclass(frozen=True)
class AfterDelay:
    """Serialize after waiting `duration_ms` milliseconds."""
    duration_ms: int


CaptureTrigger = Union[Immediate, AfterDocumentEvent, AfterElementExists, AfterDelay]


# --- Requests and results ---

@dataclass(frozen=True)
class RenderRequest:
    """
    Everything a TabRenderer needs to prerender one route.

    Attributes:
        route (str): Route path as requested by the caller (e.g. "/about").
        navigation_url (str): Absolute URL the tab navigates to.
        injected_globals (Mapping[str, Any]): JSON-serializable values exposed to the page
            as `window[injected_global_name]` before any page script runs.
        injected_global_name (str): Name of the injected global.
        capture_trigger (CaptureTrigger): When the DOM should be serialized.
    """
    route: str
    navigation_url: str
    injected_globals: Mapping[str, Any] = field(default_factory=dict)
    injected_global_name: str = "__PRERENDER_INJECTED"
    capture_trigger: CaptureTrigger = field(default_factory=Immediate)


@dataclass(frozen=True)
class RenderResult:
    """Rendered markup for one route (doctype included, whitespace trimmed)."""
    route: str
    html: str


# --- Live handles ---

@dataclass(eq=False)
class TabHandle:
    """
    One browser tab: its CDP target id and the per-tab protocol session.

    `dom_content_loaded` is a one-shot signal armed when the tab is opened and
    resolved by the first `Page.domContentEventFired` event.
    """
    target_id: str
    page: 'Page'
    session: 'CDPSession'
    dom_content_loaded: 'asyncio.Future[None]'
    closed: bool = False


@dataclass(eq=False)
class BrowserSession:
    """
    The supervised browser process and the debugging endpoint it listens on.

    Only BrowserProcessSupervisor mutates `process` and `retries_left`.
    """
    command: str
    host: str
    debug_port: int
    max_retries: int
    retries_left: int
    process: Optional[asyncio.subprocess.Process] = None
    spawn_attempts: int = 0
    version_info: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None
