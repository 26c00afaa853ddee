"""Folds emitted stream events into the assistant message to persist."""

from __future__ import annotations

import json
from typing import Any

from metis.core.messages import (
    ROLE_ASSISTANT,
    TOOL_STATE_COMPLETED,
    TOOL_STATE_ERROR,
    ChatMessage,
    TextPart,
    ToolPart,
)
from metis.infra.id_utils import new_message_id

from .models import (
    TOOL_STATUS_ERROR,
    TOOL_STATUS_STARTED,
    ContentEvent,
    StreamEvent,
    ToolCallEvent,
)


def _parse_output(result: str | None) -> Any:
    if result is None:
        return None
    try:
        return json.loads(result)
    except ValueError:
        return result


class TranscriptBuilder:
    """Collects text deltas and tool calls in arrival order."""

    def __init__(self, message_id: str | None = None) -> None:
        self._message_id = message_id or new_message_id()
        self._parts: list[TextPart | ToolPart] = []
        self._tools: dict[str, ToolPart] = {}

    def add(self, event: StreamEvent) -> None:
        if isinstance(event, ContentEvent):
            self._add_text(event.content)
        elif isinstance(event, ToolCallEvent):
            self._add_tool(event)

    def _add_text(self, text: str) -> None:
        if self._parts and isinstance(self._parts[-1], TextPart):
            self._parts[-1].text += text
        else:
            self._parts.append(TextPart(text=text))

    def _add_tool(self, event: ToolCallEvent) -> None:
        call_id = event.tool_call_id or f"{event.name}_{len(self._tools)}"
        if event.status == TOOL_STATUS_STARTED:
            part = ToolPart(
                tool_call_id=call_id, name=event.name, input=event.arguments or {}
            )
            self._tools[call_id] = part
            self._parts.append(part)
            return
        part = self._tools.get(call_id)
        if part is None:
            return
        part.output = _parse_output(event.result)
        part.state = (
            TOOL_STATE_ERROR if event.status == TOOL_STATUS_ERROR else TOOL_STATE_COMPLETED
        )

    @property
    def empty(self) -> bool:
        return not self._parts

    def build(self) -> ChatMessage:
        return ChatMessage(
            id=self._message_id, role=ROLE_ASSISTANT, parts=list(self._parts)
        )
