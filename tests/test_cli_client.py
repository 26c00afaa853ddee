"""Tests for the CLI's HTTP client against a mocked transport."""

import io
import json

import httpx
import pytest

from cli.client import METADATA_EVENT, MetisAPIClient
from cli.config import CLIConfig
from cli.metis_cli import MetisCLI
from metis.core.conversation import Conversation
from metis.core.messages import ChatMessage


def _client(handler) -> MetisAPIClient:
    return MetisAPIClient(
        CLIConfig(), client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )


async def _collect(client, **kwargs) -> list[dict]:
    return [event async for event in client.chat([{"role": "user", "content": "Hi"}], **kwargs)]


class TestChat:
    @pytest.mark.asyncio
    async def test_parses_sse_and_reports_model(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            body = (
                'data: {"type":"content","content":"Hel"}\n\n'
                'data: {"type":"content","content":"lo"}\n\n'
            )
            return httpx.Response(
                200,
                text=body,
                headers={
                    "content-type": "text/event-stream",
                    "X-Metis-Model": "Qwen3 30B",
                    "X-Metis-Model-Id": "qwen/qwen3-30b-a3b:free",
                },
            )

        client = _client(handler)
        events = await _collect(client, session_id="metis_abc", dashboard="accurate-sales")
        await client.close()

        assert events[0] == {
            "type": METADATA_EVENT,
            "model": "Qwen3 30B",
            "model_id": "qwen/qwen3-30b-a3b:free",
        }
        assert [e["content"] for e in events[1:]] == ["Hel", "lo"]
        assert seen["sessionId"] == "metis_abc"
        assert seen["dashboard"] == "accurate-sales"

    @pytest.mark.asyncio
    async def test_503_becomes_error_event(self):
        def handler(request):
            return httpx.Response(
                503, json={"error": "All AI models are down.", "code": "ALL_MODELS_FAILED"}
            )

        client = _client(handler)
        events = await _collect(client)
        await client.close()

        assert events == [
            {"type": "error", "message": "All AI models are down.", "code": "ALL_MODELS_FAILED"}
        ]


class TestSessionStoreOverHttp:
    @pytest.mark.asyncio
    async def test_conversation_round_trip(self):
        sessions: dict[str, dict] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                body = json.loads(request.content)
                sessions[body["dashboard"]] = {
                    "id": body["id"],
                    "dashboard": body["dashboard"],
                    "messages": body["messages"],
                    "created_at": "2024-01-01T00:00:00Z",
                    "updated_at": "2024-01-01T00:00:00Z",
                }
                return httpx.Response(200, json={"ok": True})
            dashboard = request.url.params["dashboard"]
            return httpx.Response(200, json={"session": sessions.get(dashboard)})

        client = _client(handler)
        first = Conversation(client)
        assert await first.resume() is False
        first.record(ChatMessage.from_text("user", "Stock in Bali?"))
        await first.save()

        second = Conversation(client)
        assert await second.resume() is True
        assert second.session_id == first.session_id
        assert [m.text for m in second.messages] == ["Stock in Bali?"]
        await client.close()

    @pytest.mark.asyncio
    async def test_http_errors_raise(self):
        client = _client(lambda request: httpx.Response(500, json={}))
        with pytest.raises(httpx.HTTPStatusError):
            await client.resume("accurate-sales")
        await client.close()


class TestMetisCLI:
    @pytest.mark.asyncio
    async def test_chat_then_clear(self):
        posted_sessions: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/chat"):
                return httpx.Response(
                    200,
                    text='data: {"type":"content","content":"Sales are up."}\n\n',
                    headers={"X-Metis-Model": "Gemini 2.0 Flash"},
                )
            if request.method == "POST":
                posted_sessions.append(json.loads(request.content))
                return httpx.Response(200, json={"ok": True})
            return httpx.Response(200, json={"session": None})

        output = io.StringIO()
        cli = MetisCLI(
            CLIConfig(),
            input_stream=io.StringIO("How are sales?\n/clear\nexit\n"),
            output_stream=output,
            client=_client(handler),
        )
        first_id = cli.conversation.session_id

        await cli.run()

        text = output.getvalue()
        assert "[Gemini 2.0 Flash]" in text
        assert "Sales are up." in text
        assert "Started a new conversation" in text
        assert posted_sessions == [
            {"id": first_id, "dashboard": "accurate-sales", "messages": []}
        ]
        assert cli.conversation.session_id != first_id
        assert cli.conversation.messages == []
