"""Pydantic models for the Metis HTTP API."""

from traceback import format_exception
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from metis.core.gateway.models import ErrorEvent, StreamEvent
from metis.core.messages import ChatMessage
from metis.core.prompt import DashboardContext

SSE_DATA_PREFIX = "data: "
SSE_EVENT_SUFFIX = "\n\n"


class ChatRequest(BaseModel):
    """Body of ``POST /api/metis/chat``."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(
        min_length=1, description="Full conversation so far, oldest first"
    )
    dashboard_context: DashboardContext | None = Field(
        default=None, alias="dashboardContext"
    )
    session_id: str | None = Field(
        default=None,
        alias="sessionId",
        description="When set, the finished exchange is saved under this id",
    )
    dashboard: str | None = Field(default=None, description="Dashboard identity")


class SessionUpsertRequest(BaseModel):
    """Body of ``POST /api/metis/sessions``.

    ``id`` and ``messages`` are optional at the model level so that a
    missing field gets the documented 400 rather than a 422.
    """

    id: str | None = None
    dashboard: str | None = None
    messages: list[dict[str, Any]] | None = None


class SessionEnvelope(BaseModel):
    session: dict[str, Any] | None = None


def format_sse(event: StreamEvent) -> str:
    """One SSE ``data:`` frame."""
    return f"{SSE_DATA_PREFIX}{event.model_dump_json(exclude_none=True)}{SSE_EVENT_SUFFIX}"


def format_error_sse(
    exc: BaseException, *, code: str, send_traceback: bool = False
) -> str:
    message = (
        "".join(format_exception(exc))
        if send_traceback
        else "The response was interrupted. Please try again."
    )
    return format_sse(ErrorEvent(message=message, code=code))
