"""Conversation messages in the shape the dashboard client sends them.

A message is a role plus an ordered list of parts.  Text parts carry
prose; tool parts record one ``queryDatabase`` invocation with its input
and, once it finished, its output.  ``to_langchain`` turns a history into
the LangChain messages a chat model understands.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Literal

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_TOOL = "tool"

PART_TEXT = "text"
PART_TOOL = "tool"

TOOL_STATE_PENDING = "pending"
TOOL_STATE_COMPLETED = "completed"
TOOL_STATE_ERROR = "error"


class TextPart(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["text"] = PART_TEXT
    text: str = ""


class ToolPart(BaseModel):
    """One tool invocation inside an assistant message."""

    model_config = ConfigDict(extra="allow")

    type: Literal["tool"] = PART_TOOL
    tool_call_id: str
    name: str = "queryDatabase"
    input: dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    state: Literal["pending", "completed", "error"] = TOOL_STATE_PENDING

    @property
    def finished(self) -> bool:
        return self.state != TOOL_STATE_PENDING and self.output is not None


MessagePart = Annotated[TextPart | ToolPart, Field(discriminator="type")]

# Dashboard client (AI SDK UI message) tool part states.
_CLIENT_TOOL_STATES = {
    "output-available": TOOL_STATE_COMPLETED,
    "output-error": TOOL_STATE_ERROR,
}
_CLIENT_TOOL_PREFIX = "tool-"


def _normalize_part(part: Any) -> Any | None:
    """Map client part shapes onto ours; ``None`` drops the part."""
    if not isinstance(part, dict):
        return part
    kind = part.get("type")
    if kind in (PART_TEXT, PART_TOOL):
        return part
    if isinstance(kind, str) and kind.startswith(_CLIENT_TOOL_PREFIX):
        state = _CLIENT_TOOL_STATES.get(part.get("state", ""), TOOL_STATE_PENDING)
        output = part.get("output")
        if state == TOOL_STATE_ERROR and output is None:
            output = {"success": False, "error": part.get("errorText", "")}
        return {
            "type": PART_TOOL,
            "tool_call_id": part.get("toolCallId", ""),
            "name": kind[len(_CLIENT_TOOL_PREFIX) :],
            "input": part.get("input") or {},
            "output": output,
            "state": state,
        }
    # step-start, reasoning, sources, ...: nothing a backend can replay.
    return None


class ChatMessage(BaseModel):
    """A single conversation message."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    role: Literal["user", "assistant", "tool"]
    parts: list[MessagePart] = Field(default_factory=list)

    @field_validator("parts", mode="before")
    @classmethod
    def _client_parts(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        normalized = (_normalize_part(p) for p in value)
        return [p for p in normalized if p is not None]

    @model_validator(mode="before")
    @classmethod
    def _plain_content(cls, data: Any) -> Any:
        # Older clients send {"role", "content"} without parts.
        if isinstance(data, dict) and "parts" not in data:
            content = data.get("content")
            if isinstance(content, str):
                data = {**data, "parts": [{"type": PART_TEXT, "text": content}]}
        return data

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @classmethod
    def from_text(cls, role: str, text: str, **kwargs: Any) -> "ChatMessage":
        return cls(role=role, parts=[TextPart(text=text)], **kwargs)


def _tool_output_content(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, ensure_ascii=False, default=str)


def _assistant_to_langchain(message: ChatMessage) -> list[BaseMessage]:
    """Split an assistant message into AI turns and their tool results.

    Every finished tool part closes the current AI turn: the text seen so
    far becomes that turn's content and the call becomes its tool call,
    followed by the matching ``ToolMessage``.  Unfinished tool parts are
    dropped since no backend accepts a call without a result.
    """
    out: list[BaseMessage] = []
    buffer: list[str] = []
    for part in message.parts:
        if isinstance(part, TextPart):
            buffer.append(part.text)
            continue
        if not part.finished:
            logger.debug("Dropping unfinished tool part %s", part.tool_call_id)
            continue
        out.append(
            AIMessage(
                content="".join(buffer),
                tool_calls=[
                    {"name": part.name, "args": part.input, "id": part.tool_call_id}
                ],
            )
        )
        out.append(
            ToolMessage(
                content=_tool_output_content(part.output),
                tool_call_id=part.tool_call_id,
                name=part.name,
            )
        )
        buffer = []
    tail = "".join(buffer)
    if tail:
        out.append(AIMessage(content=tail))
    return out


def to_langchain(messages: list[ChatMessage]) -> list[BaseMessage]:
    """Convert a client history into LangChain messages, in order."""
    out: list[BaseMessage] = []
    for message in messages:
        if message.role == ROLE_USER:
            out.append(HumanMessage(content=message.text))
        elif message.role == ROLE_ASSISTANT:
            out.extend(_assistant_to_langchain(message))
        else:
            for part in message.parts:
                if isinstance(part, ToolPart) and part.finished:
                    out.append(
                        ToolMessage(
                            content=_tool_output_content(part.output),
                            tool_call_id=part.tool_call_id,
                            name=part.name,
                        )
                    )
    return out


def dump_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    """JSON-ready dicts for storage."""
    return [m.model_dump(mode="json") for m in messages]
