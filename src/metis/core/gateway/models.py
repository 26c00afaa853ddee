"""Stream events emitted while serving one chat response."""

from typing import Any, Literal

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Event type constants
# ---------------------------------------------------------------------------

EVENT_TYPE_CONTENT = "content"
EVENT_TYPE_TOOL_CALL = "tool_call"
EVENT_TYPE_STEP_BUDGET = "step_budget"
EVENT_TYPE_ERROR = "error"

VALID_EVENT_TYPES = frozenset(
    {
        EVENT_TYPE_CONTENT,
        EVENT_TYPE_TOOL_CALL,
        EVENT_TYPE_STEP_BUDGET,
        EVENT_TYPE_ERROR,
    }
)

# Tool call lifecycle statuses
TOOL_STATUS_STARTED = "started"
TOOL_STATUS_COMPLETED = "completed"
TOOL_STATUS_ERROR = "error"

VALID_TOOL_STATUSES = frozenset(
    {
        TOOL_STATUS_STARTED,
        TOOL_STATUS_COMPLETED,
        TOOL_STATUS_ERROR,
    }
)


class ContentEvent(BaseModel):
    """Streamed answer text."""

    type: Literal["content"] = EVENT_TYPE_CONTENT
    content: str = Field(description="Text delta")


class ToolCallEvent(BaseModel):
    """Tool invocation lifecycle event."""

    type: Literal["tool_call"] = EVENT_TYPE_TOOL_CALL
    name: str = Field(description="Tool name, e.g. 'queryDatabase'")
    status: Literal["started", "completed", "error"] = Field(
        description="Tool call lifecycle status"
    )
    arguments: dict[str, Any] | None = Field(
        default=None, description="Tool arguments (present when started)"
    )
    result: str | None = Field(
        default=None,
        description="JSON tool result (present when completed or error)",
    )
    tool_call_id: str | None = Field(
        default=None, description="Provider tool call id (e.g. call_xxx)"
    )


class StepBudgetEvent(BaseModel):
    """The step budget ran out before the model produced a final answer."""

    type: Literal["step_budget"] = EVENT_TYPE_STEP_BUDGET
    steps: int = Field(description="Model turns used")
    message: str = Field(
        default="Step limit reached before a final answer.",
        description="Human-readable status message",
    )


class ErrorEvent(BaseModel):
    """Stream-level error event."""

    type: Literal["error"] = EVENT_TYPE_ERROR
    message: str = Field(description="Error message")
    code: str | None = Field(default=None, description="Error code")


StreamEvent = ContentEvent | ToolCallEvent | StepBudgetEvent | ErrorEvent
