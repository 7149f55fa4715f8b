"""
Custom exception classes for the SPA Prerenderer.
"""
from typing import Optional


class PrerenderFrameworkError(Exception):
    """
    Base class for all custom exceptions in the SPA Prerenderer.

    Attributes:
        message (str): A human-readable description of the error.
    """
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


# --- Configuration Related Exceptions ---
class ConfigurationError(PrerenderFrameworkError):
    """
    Raised for invalid prerender options, such as more than one capture trigger
    being configured at the same time.
    """
    def __init__(self, message: str):
        super().__init__(message)


# --- Component Related Exceptions ---
class ComponentError(PrerenderFrameworkError):
    """
    A general base class for errors originating from within a specific component
    (e.g., Renderer, Server, Storage).

    Attributes:
        component_name (str): Name of the component where the error originated.
    """
    def __init__(self, component_name: str, message: str):
        full_message = f"Error in component '{component_name}': {message}"
        super().__init__(full_message)
        self.component_name = component_name


class RendererError(ComponentError):
    """Raised for errors specific to the Renderer component (browser process, tabs, page scripts)."""
    def __init__(self, message: str):
        super().__init__(component_name="Renderer", message=message)


class ServerError(ComponentError):
    """Raised when the static asset server cannot be started or stopped."""
    def __init__(self, message: str):
        super().__init__(component_name="Server", message=message)


class StorageError(ComponentError):
    """Raised for errors specific to the Storage component (writing rendered routes to disk)."""
    def __init__(self, message: str):
        super().__init__(component_name="Storage", message=message)


# --- Renderer failure taxonomy ---
class NoBrowserFoundError(RendererError):
    """Raised when no browser command is configured and none of the platform candidates runs."""
    def __init__(self, platform: str):
        super().__init__(
            f"Unable to find a headless browser for platform '{platform}'. "
            f"You should probably set the browser_command option."
        )
        self.platform = platform


class LaunchExhaustedError(RendererError):
    """
    Raised when the browser process could not be started after every launch retry.

    Attributes:
        attempts (int): Number of spawn attempts that were made.
    """
    def __init__(self, command: str, attempts: int):
        super().__init__(
            f"Unable to start browser '{command}' after {attempts} attempt(s). No more retries. "
            f"You should probably set the browser_command option."
        )
        self.command = command
        self.attempts = attempts


class BrowserConnectionRefusedError(RendererError):
    """Raised when the remote-debugging endpoint of the browser cannot be reached."""
    def __init__(self, host: str, port: int, original_exception: Optional[Exception] = None):
        message = f"Unable to connect to the debugging endpoint at {host}:{port}"
        if original_exception:
            message += f" (Original exception: {str(original_exception)})"
        super().__init__(message)
        self.host = host
        self.port = port
        self.original_exception = original_exception


class EvaluationError(RendererError):
    """Raised when a page-context script throws or returns a payload that cannot be parsed."""
    def __init__(self, message: str):
        super().__init__(message)


class NavigationError(RendererError):
    """Raised when a tab fails to navigate to its route."""
    def __init__(self, url: str, message: str):
        super().__init__(f"Failed to navigate to '{url}': {message}")
        self.url = url


class CaptureTimeoutError(RendererError):
    """Raised when a bounded wait (DOM load, delayed capture, optional capture bound) expires."""
    def __init__(self, message: str, timeout_ms: Optional[float] = None):
        super().__init__(message)
        self.timeout_ms = timeout_ms
