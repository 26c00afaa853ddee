"""Unit tests for stream event models and their SSE framing."""

import json

import pytest
from pydantic import TypeAdapter, ValidationError

from metis.api.models import format_error_sse, format_sse
from metis.core.gateway.models import (
    EVENT_TYPE_CONTENT,
    EVENT_TYPE_ERROR,
    EVENT_TYPE_STEP_BUDGET,
    EVENT_TYPE_TOOL_CALL,
    TOOL_STATUS_COMPLETED,
    TOOL_STATUS_ERROR,
    TOOL_STATUS_STARTED,
    VALID_EVENT_TYPES,
    VALID_TOOL_STATUSES,
    ContentEvent,
    ErrorEvent,
    StepBudgetEvent,
    StreamEvent,
    ToolCallEvent,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------


class TestConstants:
    def test_valid_event_types(self):
        assert VALID_EVENT_TYPES == {
            EVENT_TYPE_CONTENT,
            EVENT_TYPE_TOOL_CALL,
            EVENT_TYPE_STEP_BUDGET,
            EVENT_TYPE_ERROR,
        }

    def test_valid_tool_statuses(self):
        assert VALID_TOOL_STATUSES == {
            TOOL_STATUS_STARTED,
            TOOL_STATUS_COMPLETED,
            TOOL_STATUS_ERROR,
        }

    def test_event_models_match_constants(self):
        assert ContentEvent(content="x").type == EVENT_TYPE_CONTENT
        assert ToolCallEvent(name="t", status="started").type == EVENT_TYPE_TOOL_CALL
        assert StepBudgetEvent(steps=5).type == EVENT_TYPE_STEP_BUDGET
        assert ErrorEvent(message="x").type == EVENT_TYPE_ERROR


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestToolCallEvent:
    def test_invalid_status_rejected(self):
        with pytest.raises(ValidationError):
            ToolCallEvent(name="queryDatabase", status="running")

    def test_optional_fields_default_to_none(self):
        event = ToolCallEvent(name="queryDatabase", status="started")
        assert event.arguments is None
        assert event.result is None
        assert event.tool_call_id is None


class TestUnion:
    @pytest.mark.parametrize(
        "raw, cls",
        [
            ({"type": "content", "content": "hi"}, ContentEvent),
            ({"type": "tool_call", "name": "queryDatabase", "status": "error"}, ToolCallEvent),
            ({"type": "step_budget", "steps": 5}, StepBudgetEvent),
            ({"type": "error", "message": "x", "code": "REQUEST_TIMEOUT"}, ErrorEvent),
        ],
    )
    def test_parses_wire_events(self, raw, cls):
        assert isinstance(TypeAdapter(StreamEvent).validate_python(raw), cls)


# ---------------------------------------------------------------------------
# SSE framing
# ---------------------------------------------------------------------------


class TestFormatSse:
    def test_frame_shape(self):
        frame = format_sse(ContentEvent(content="Hello"))
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame[len("data: ") :]) == {"type": "content", "content": "Hello"}

    def test_none_fields_are_omitted(self):
        frame = format_sse(ToolCallEvent(name="queryDatabase", status="started"))
        payload = json.loads(frame[len("data: ") :])
        assert payload == {"type": "tool_call", "name": "queryDatabase", "status": "started"}

    def test_error_without_traceback(self):
        payload = json.loads(
            format_error_sse(RuntimeError("secret"), code="STREAM_INTERRUPTED")[6:]
        )
        assert payload["code"] == "STREAM_INTERRUPTED"
        assert "secret" not in payload["message"]

    def test_error_with_traceback(self):
        try:
            raise RuntimeError("visible")
        except RuntimeError as exc:
            frame = format_error_sse(exc, code="STREAM_INTERRUPTED", send_traceback=True)
        assert "visible" in json.loads(frame[6:])["message"]
