"""Chat endpoint: streams one assistant turn over SSE."""

import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from metis.configs.models import display_name
from metis.core.gateway import ServedStream, StreamEvent, TranscriptBuilder
from metis.core.messages import dump_messages

from .deps import APIConfigDep, AssistantConfigDep, GatewayDep, SessionSaverDep
from .models import ChatRequest
from .streaming import CODE_OK, sse_stream

logger = logging.getLogger(__name__)

STREAMING_RESPONSE_MEDIA_TYPE = "text/event-stream"
STREAMING_RESPONSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
MODEL_HEADER = "X-Metis-Model"
MODEL_ID_HEADER = "X-Metis-Model-Id"
CHAT_SERVICE_NAME = "chat"

router = APIRouter(prefix="/api/metis", tags=["chat"])


async def _recorded(
    served: ServedStream, transcript: TranscriptBuilder
) -> AsyncGenerator[StreamEvent, None]:
    async with aclosing(served.events()) as events:
        async for event in events:
            transcript.add(event)
            yield event


@router.post("/chat")
async def chat(
    body: ChatRequest,
    gateway: GatewayDep,
    saver: SessionSaverDep,
    assistant: AssistantConfigDep,
    api_config: APIConfigDep,
) -> StreamingResponse:
    """Stream the assistant's reply as Server-Sent Events.

    Each ``data:`` frame is one JSON event: ``content`` (text delta),
    ``tool_call`` (started / completed / error), ``step_budget`` or
    ``error``.  The serving model is reported in the ``X-Metis-Model``
    header.  When every model fails before producing output the request
    fails with 503 instead of opening a stream.
    """
    served = await gateway.open(body.messages, body.dashboard_context)
    transcript = TranscriptBuilder()
    dashboard = body.dashboard or assistant.default_dashboard

    async def save_exchange(code: str) -> None:
        if code != CODE_OK or not body.session_id:
            return
        messages = [*body.messages, transcript.build()]
        saver.submit(body.session_id, dashboard, dump_messages(messages))

    headers = {
        **STREAMING_RESPONSE_HEADERS,
        MODEL_HEADER: display_name(served.candidate.id, gateway.candidates),
        MODEL_ID_HEADER: served.candidate.id,
    }
    return StreamingResponse(
        sse_stream(
            _recorded(served, transcript),
            request_timeout=assistant.request_timeout,
            service_name=CHAT_SERVICE_NAME,
            send_traceback=api_config.send_traceback,
            on_finish=save_exchange,
        ),
        media_type=STREAMING_RESPONSE_MEDIA_TYPE,
        headers=headers,
    )
