"""Reusable SSE streaming infrastructure.

Wraps an async generator of domain ``StreamEvent`` objects into SSE
frames with a whole-response timeout, an error boundary and unified
metrics and tracing.  The gateway stays free of SSE formatting and of
exception handling for the wire; this module owns both.
"""

import asyncio
import json
import logging
import time
from collections import Counter as EventCounter
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import timedelta

from metis.core.gateway.models import ErrorEvent, StreamEvent, ToolCallEvent
from metis.core.metrics import (
    CHAT_STREAM_DURATION_SECONDS,
    CHAT_STREAMS_ACTIVE,
    CHAT_STREAMS_TOTAL,
    STREAM_EVENTS_TOTAL,
    TOOL_CALLS_TOTAL,
)
from metis.infra.telemetry import (
    ATTR_SSE_ERROR_CODE,
    ATTR_SSE_EVENT_COUNTS,
    ATTR_SSE_SERVICE,
    SPAN_SSE_STREAM,
    tracer,
)

from .models import format_error_sse, format_sse

logger = logging.getLogger(__name__)

CODE_OK = "ok"
CODE_REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
CODE_STREAM_INTERRUPTED = "STREAM_INTERRUPTED"
CODE_CANCELLED = "CANCELLED"


async def sse_stream(
    events: AsyncGenerator[StreamEvent, None],
    *,
    request_timeout: timedelta,
    service_name: str = "",
    send_traceback: bool = False,
    on_finish: Callable[[str], Awaitable[None]] | None = None,
) -> AsyncGenerator[str, None]:
    """Format domain events as SSE with timeout, error handling, and metrics.

    Parameters
    ----------
    events:
        Async generator of ``StreamEvent`` instances.
    request_timeout:
        Wall-clock timeout for the entire response.
    service_name:
        Logical service label for Prometheus metrics.
    on_finish:
        Optional async callback run in the ``finally`` block with the
        outcome code (``"ok"`` when the stream ended normally).  It is
        not run when the client went away.

    Yields
    ------
    SSE-formatted strings (``data: {...}\\n\\n``).
    """
    with tracer.start_as_current_span(SPAN_SSE_STREAM) as span:
        span.set_attribute(ATTR_SSE_SERVICE, service_name)
        code = CODE_OK
        event_counts: EventCounter[str] = EventCounter()
        CHAT_STREAMS_ACTIVE.labels(service=service_name).inc()
        start = time.monotonic()
        try:
            async with asyncio.timeout(request_timeout.total_seconds()):
                async for event in events:
                    event_counts[event.type] += 1
                    STREAM_EVENTS_TOTAL.labels(
                        service=service_name, event_type=event.type
                    ).inc()
                    if isinstance(event, ToolCallEvent):
                        TOOL_CALLS_TOTAL.labels(
                            service=service_name,
                            tool_name=event.name,
                            status=event.status,
                        ).inc()
                    yield format_sse(event)

        except TimeoutError:
            code = CODE_REQUEST_TIMEOUT
            logger.warning("Request timed out after %s.", request_timeout)
            yield format_sse(ErrorEvent(message="Request timed out.", code=code))
        except (asyncio.CancelledError, GeneratorExit):
            code = CODE_CANCELLED
            logger.info("Client disconnected; stream cancelled.")
            raise
        except Exception as e:
            code = CODE_STREAM_INTERRUPTED
            span.record_exception(e)
            logger.warning("Stream interrupted after first output", exc_info=True)
            yield format_error_sse(e, code=code, send_traceback=send_traceback)
        finally:
            await events.aclose()
            span.set_attribute(ATTR_SSE_ERROR_CODE, code)
            span.set_attribute(ATTR_SSE_EVENT_COUNTS, json.dumps(event_counts))
            CHAT_STREAMS_ACTIVE.labels(service=service_name).dec()
            CHAT_STREAMS_TOTAL.labels(service=service_name, status=code).inc()
            CHAT_STREAM_DURATION_SECONDS.labels(service=service_name).observe(
                time.monotonic() - start
            )
            if on_finish and code != CODE_CANCELLED:
                await on_finish(code)
