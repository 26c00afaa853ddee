"""Tests for conversation messages and their LangChain conversion."""

import json

from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from metis.core.messages import (
    ChatMessage,
    TextPart,
    ToolPart,
    dump_messages,
    to_langchain,
)


def _assistant_with_tool(state="output-available") -> dict:
    return {
        "id": "msg_a1",
        "role": "assistant",
        "parts": [
            {"type": "step-start"},
            {"type": "text", "text": "Let me check. "},
            {
                "type": "tool-queryDatabase",
                "toolCallId": "call_1",
                "state": state,
                "input": {"sql": "SELECT 1", "purpose": "check"},
                "output": {"success": True, "rows": [{"x": 1}]},
                "errorText": "boom",
            },
            {"type": "text", "text": "It is 1."},
        ],
    }


class TestChatMessage:
    def test_plain_content_becomes_a_text_part(self):
        message = ChatMessage.model_validate({"role": "user", "content": "Hi"})
        assert message.parts == [TextPart(text="Hi")]
        assert message.text == "Hi"

    def test_client_tool_parts_are_normalized(self):
        message = ChatMessage.model_validate(_assistant_with_tool())
        kinds = [type(p) for p in message.parts]
        assert kinds == [TextPart, ToolPart, TextPart]

        tool = message.parts[1]
        assert tool.tool_call_id == "call_1"
        assert tool.name == "queryDatabase"
        assert tool.state == "completed"
        assert tool.finished
        assert message.text == "Let me check. It is 1."

    def test_client_error_state(self):
        raw = _assistant_with_tool(state="output-error")
        del raw["parts"][2]["output"]
        tool = ChatMessage.model_validate(raw).parts[1]
        assert tool.state == "error"
        assert tool.output == {"success": False, "error": "boom"}

    def test_streaming_tool_part_is_pending(self):
        tool = ChatMessage.model_validate(_assistant_with_tool(state="input-streaming")).parts[1]
        assert tool.state == "pending"
        assert not tool.finished

    def test_stored_shape_validates_again(self):
        message = ChatMessage.model_validate(_assistant_with_tool())
        again = ChatMessage.model_validate(dump_messages([message])[0])
        assert again == message

    def test_from_text(self):
        message = ChatMessage.from_text("assistant", "Done.", id="msg_1")
        assert message.id == "msg_1"
        assert message.role == "assistant"
        assert message.text == "Done."


class TestToLangchain:
    def test_user_and_assistant_text(self):
        out = to_langchain(
            [
                ChatMessage.from_text("user", "Hi"),
                ChatMessage.from_text("assistant", "Hello"),
            ]
        )
        assert out == [HumanMessage(content="Hi"), AIMessage(content="Hello")]

    def test_finished_tool_part_becomes_call_and_result(self):
        out = to_langchain([ChatMessage.model_validate(_assistant_with_tool())])

        assert [type(m) for m in out] == [AIMessage, ToolMessage, AIMessage]
        call, result, tail = out
        assert call.content == "Let me check. "
        assert call.tool_calls[0]["id"] == "call_1"
        assert call.tool_calls[0]["args"] == {"sql": "SELECT 1", "purpose": "check"}
        assert result.tool_call_id == "call_1"
        assert json.loads(result.content)["rows"] == [{"x": 1}]
        assert tail.content == "It is 1."

    def test_unfinished_tool_part_is_dropped(self):
        raw = _assistant_with_tool(state="input-available")
        out = to_langchain([ChatMessage.model_validate(raw)])
        assert out == [AIMessage(content="Let me check. It is 1.")]

    def test_empty_history(self):
        assert to_langchain([]) == []
