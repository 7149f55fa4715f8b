"""
Validated prerender options.

`PrerenderOptions` is the single description of a prerender pass. It is built
from the `prerender` section of the YAML configuration (`from_config`) or from
a plain mapping (`from_mapping`), and knows how to turn its `capture_*` fields
into a `CaptureTrigger`.
"""
from typing import Any, Dict, List, Mapping, Optional, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from spa_prerenderer.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from spa_prerenderer.components.renderer.models import CaptureTrigger
    from spa_prerenderer.core.config import ConfigurationManager

DEFAULT_INJECTED_GLOBAL_NAME = "__PRERENDER_INJECTED"


class PrerenderOptions(BaseModel):
    """
    Options recognized by the prerenderer.

    Durations ending in `_time`/`_timeout` are milliseconds, except
    `port_ready_timeout` which is seconds.
    """
    routes: List[str] = Field(default_factory=lambda: ["/"])
    static_dir: Optional[str] = None
    output_dir: Optional[str] = None
    index_path: Optional[str] = None
    browser_command: Optional[str] = None
    renderer_port: Optional[int] = Field(None, gt=0, lt=65536)
    server_port: Optional[int] = Field(None, gt=0, lt=65536)
    host: str = "127.0.0.1"
    max_launch_retries: int = Field(5, ge=0)
    injected_globals: Dict[str, Any] = Field(default_factory=dict)
    injected_global_name: str = DEFAULT_INJECTED_GLOBAL_NAME
    capture_after_document_event: Optional[str] = None
    capture_after_element_exists: Optional[str] = None
    capture_after_time: Optional[int] = Field(None, ge=0)
    browser_arguments: List[str] = Field(default_factory=list)
    page_load_timeout: Optional[int] = Field(30000, gt=0)
    capture_timeout: Optional[int] = Field(None, gt=0)
    port_ready_timeout: float = Field(30.0, gt=0)
    max_concurrent_tabs: Optional[int] = Field(None, ge=1)
    route_retries: int = Field(0, ge=0)
    log_browser_output: bool = False

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_paths(cls, data: Any) -> Any:
        # `paths` is the older name for `routes`.
        if isinstance(data, dict) and "paths" in data and not data.get("routes"):
            data = dict(data)
            data["routes"] = data.pop("paths")
        if isinstance(data, dict):
            # YAML `null` means "use the default".
            data = {key: value for key, value in data.items() if value is not None}
        return data

    @field_validator("routes")
    @classmethod
    def _normalize_routes(cls, routes: List[str]) -> List[str]:
        return [route if route.startswith("/") else f"/{route}" for route in routes]

    @model_validator(mode="after")
    def _single_capture_trigger(self) -> 'PrerenderOptions':
        configured = [
            name for name, value in (
                ("capture_after_document_event", self.capture_after_document_event),
                ("capture_after_element_exists", self.capture_after_element_exists),
                ("capture_after_time", self.capture_after_time),
            ) if value
        ]
        if len(configured) > 1:
            raise ValueError(f"Only one capture trigger may be configured, got: {', '.join(configured)}")
        return self

    @property
    def resolved_output_dir(self) -> Optional[str]:
        return self.output_dir or self.static_dir

    def capture_trigger(self) -> 'CaptureTrigger':
        """The CaptureTrigger described by the `capture_*` fields (Immediate if none is set)."""
        # Imported here: the renderer package imports this module.
        from spa_prerenderer.components.renderer.models import AfterDelay, AfterDocumentEvent, AfterElementExists, Immediate

        if self.capture_after_document_event:
            return AfterDocumentEvent(self.capture_after_document_event)
        if self.capture_after_element_exists:
            return AfterElementExists(self.capture_after_element_exists)
        if self.capture_after_time:
            return AfterDelay(self.capture_after_time)
        return Immediate()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'PrerenderOptions':
        """
        Validates `data` into options.

        Raises:
            ConfigurationError: If any option is invalid.
        """
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid prerender options: {e}")

    @classmethod
    def from_config(
        cls,
        config: 'ConfigurationManager',
        overrides: Optional[Mapping[str, Any]] = None,
        key: str = "prerender",
    ) -> 'PrerenderOptions':
        """Builds options from the `key` section of `config`, with `overrides` applied on top."""
        section = config.get(key, {}) or {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"Configuration section '{key}' must be a mapping.")
        merged = dict(section)
        merged.update({k: v for k, v in (overrides or {}).items() if v is not None})
        return cls.from_mapping(merged)
