"""Response formatter for displaying events by type."""

import logging
from typing import TextIO

logger = logging.getLogger(__name__)

MAX_RESULT_PREVIEW = 100


class ResponseFormatter:
    """Writes streamed chat events to a text stream."""

    def __init__(self, output: TextIO, show_tool_results: bool = False):
        self.output = output
        self.show_tool_results = show_tool_results
        self.content_started = False

    def handle_event(self, event: dict) -> None:
        event_type = event.get("type")

        if event_type == "_metadata":
            model = event.get("model") or event.get("model_id") or "unknown model"
            self._print(f"[{model}]\n")

        elif event_type == "content":
            if not self.content_started:
                self._print("\n")
                self.content_started = True
            self._print(event.get("content", ""))

        elif event_type == "tool_call":
            self._handle_tool_call(event)

        elif event_type == "step_budget":
            self._print(f"\n⚠️  {event.get('message', 'Step limit reached.')}\n")

        elif event_type == "error":
            message = event.get("message", "Unknown error")
            code = event.get("code", "UNKNOWN")
            self._print(f"\n❌ Error [{code}]: {message}\n")

        else:
            logger.debug("Unknown event type: %s, event: %s", event_type, event)

    def _handle_tool_call(self, event: dict) -> None:
        status = event.get("status")
        arguments = event.get("arguments") or {}
        result = event.get("result") or ""

        if status == "started":
            purpose = arguments.get("purpose") or event.get("name", "query")
            self._print(f"\n🔎 {purpose}\n")
        elif status == "completed":
            self._print("   done" + self._preview(result) + "\n")
        elif status == "error":
            self._print("   failed" + self._preview(result, force=True) + "\n")

    def _preview(self, result: str, force: bool = False) -> str:
        if not result or not (self.show_tool_results or force):
            return ""
        if len(result) > MAX_RESULT_PREVIEW:
            return f": {result[:MAX_RESULT_PREVIEW]}..."
        return f": {result}"

    def finish_response(self) -> None:
        if self.content_started:
            self._print("\n")
        self.content_started = False

    def _print(self, text: str) -> None:
        self.output.write(text)
        self.output.flush()
