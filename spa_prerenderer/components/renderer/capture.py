"""
Decides when a navigated page is serialized and parses what the page returns.

The waiting happens inside the page: `CaptureStrategy.build_expression` renders
one script that resolves a promise with a JSON payload once the configured
trigger fires. The controlling process only evaluates that script (awaiting the
promise) and parses the payload.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, TYPE_CHECKING

from spa_prerenderer.components.renderer.models import (
    AfterDelay,
    AfterDocumentEvent,
    AfterElementExists,
    CaptureTrigger,
    Immediate,
    TabHandle,
)
from spa_prerenderer.core.exceptions import EvaluationError
from spa_prerenderer.core.logger import get_logger

if TYPE_CHECKING:
    from spa_prerenderer.components.renderer.protocol_client import ProtocolClient

logger = get_logger(__name__)

ELEMENT_POLL_INTERVAL_MS = 100

# Page-side capture function. `%s` is replaced with the JSON encoded options.
CAPTURE_SCRIPT_TEMPLATE = """(function (options) {
  return new Promise(function (resolve) {
    function captureDocument () {
      var doctype = document.doctype ? new window.XMLSerializer().serializeToString(document.doctype) : '';
      return JSON.stringify({
        route: window.location.pathname,
        html: doctype + document.documentElement.outerHTML
      });
    }

    if (options.trigger === 'document-event') {
      document.addEventListener(options.eventName, function () {
        resolve(captureDocument());
      }, { once: true });
    } else if (options.trigger === 'element-exists') {
      var poll = window.setInterval(function () {
        if (document.querySelector(options.selector)) {
          window.clearInterval(poll);
          resolve(captureDocument());
        }
      }, options.pollInterval);
    } else if (options.trigger === 'delay') {
      window.setTimeout(function () {
        resolve(captureDocument());
      }, options.delay);
    } else {
      resolve(captureDocument());
    }
  });
})(%s)"""


@dataclass(frozen=True)
class CapturedDocument:
    """Parsed capture payload: the path the page reports and the serialized document."""
    route: Optional[str]
    html: str


class CaptureStrategy:
    """
    Builds the page-side capture script for a `CaptureTrigger` and turns its
    result into a `CapturedDocument`.
    """

    def __init__(self, poll_interval_ms: int = ELEMENT_POLL_INTERVAL_MS):
        self.poll_interval_ms = poll_interval_ms

    def page_options(self, trigger: CaptureTrigger) -> Dict[str, Any]:
        """Maps a trigger onto the options object understood by the page-side script."""
        if isinstance(trigger, Immediate):
            return {"trigger": "immediate"}
        if isinstance(trigger, AfterDocumentEvent):
            return {"trigger": "document-event", "eventName": trigger.event_name}
        if isinstance(trigger, AfterElementExists):
            return {
                "trigger": "element-exists",
                "selector": trigger.selector,
                "pollInterval": self.poll_interval_ms,
            }
        if isinstance(trigger, AfterDelay):
            return {"trigger": "delay", "delay": trigger.duration_ms}
        raise TypeError(f"Unsupported capture trigger: {trigger!r}")

    def build_expression(self, trigger: CaptureTrigger) -> str:
        return CAPTURE_SCRIPT_TEMPLATE % json.dumps(self.page_options(trigger))

    def parse_payload(self, raw: Any) -> CapturedDocument:
        """
        Validates the value returned by the capture script.

        Args:
            raw (Any): The evaluated value; expected to be a JSON string with
                `route` and `html` keys.

        Returns:
            CapturedDocument: The parsed payload with `html` trimmed.

        Raises:
            EvaluationError: If the value is not a string, not valid JSON, or lacks `html`.
        """
        if not isinstance(raw, str):
            raise EvaluationError(f"Capture script returned {type(raw).__name__} instead of a JSON string.")
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise EvaluationError(f"Capture script returned unparsable JSON: {e}")
        if not isinstance(payload, dict) or not isinstance(payload.get("html"), str):
            raise EvaluationError("Capture payload does not contain an 'html' string.")

        route = payload.get("route")
        if not isinstance(route, str) or not route:
            route = None
        return CapturedDocument(route=route, html=payload["html"].strip())

    async def capture(
        self,
        client: 'ProtocolClient',
        tab: TabHandle,
        trigger: CaptureTrigger,
        timeout_ms: Optional[float] = None,
    ) -> CapturedDocument:
        """Runs the capture script in `tab` and returns the parsed document."""
        logger.debug(f"Capturing tab {tab.target_id} with trigger {trigger!r}.")
        raw = await client.evaluate_expression(tab, self.build_expression(trigger), timeout_ms=timeout_ms)
        return self.parse_payload(raw)
