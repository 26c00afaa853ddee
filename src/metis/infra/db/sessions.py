"""Session store: resume and upsert one conversation per dashboard."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from metis.infra.telemetry import (
    ATTR_SESSION_DASHBOARD,
    ATTR_SESSION_ID,
    ATTR_SESSION_MESSAGE_COUNT,
    SPAN_SESSION_RESUME,
    SPAN_SESSION_UPSERT,
    tracer,
)

from .models import AssistantSession, utcnow

logger = logging.getLogger(__name__)

DIALECT_POSTGRESQL = "postgresql"
DIALECT_SQLITE = "sqlite"


class StoredSession(BaseModel):
    """A saved conversation as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    dashboard: str
    messages: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class SessionStore(Protocol):
    """What the API and the background saver need from storage."""

    async def resume(self, dashboard: str) -> StoredSession | None: ...

    async def upsert(
        self, session_id: str, dashboard: str, messages: list[dict[str, Any]]
    ) -> None: ...


def _dialect_insert(dialect_name: str):
    """``INSERT`` construct with ``ON CONFLICT`` support for *dialect_name*."""
    if dialect_name == DIALECT_POSTGRESQL:
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == DIALECT_SQLITE:
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Session upsert not supported on {dialect_name!r}")
    return insert


class SessionRepository:
    """SQLAlchemy-backed :class:`SessionStore`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def resume(self, dashboard: str) -> StoredSession | None:
        """Most recently updated session for *dashboard*, or ``None``."""
        with tracer.start_as_current_span(SPAN_SESSION_RESUME) as span:
            span.set_attribute(ATTR_SESSION_DASHBOARD, dashboard)
            stmt = (
                select(AssistantSession)
                .where(AssistantSession.dashboard == dashboard)
                .order_by(
                    AssistantSession.updated_at.desc(),
                    AssistantSession.created_at.desc(),
                )
                .limit(1)
            )
            async with self._session_factory() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                return None
            span.set_attribute(ATTR_SESSION_ID, row.id)
            return StoredSession.model_validate(row)

    async def upsert(
        self, session_id: str, dashboard: str, messages: list[dict[str, Any]]
    ) -> None:
        """Create the session or replace its message list.

        ``updated_at`` only moves when the messages actually change, so
        repeating the same upsert leaves the row untouched.
        """
        with tracer.start_as_current_span(SPAN_SESSION_UPSERT) as span:
            span.set_attribute(ATTR_SESSION_ID, session_id)
            span.set_attribute(ATTR_SESSION_DASHBOARD, dashboard)
            span.set_attribute(ATTR_SESSION_MESSAGE_COUNT, len(messages))

            async with self._session_factory() as session:
                insert = _dialect_insert(session.get_bind().dialect.name)
                now = utcnow()
                stmt = insert(AssistantSession).values(
                    id=session_id,
                    dashboard=dashboard,
                    messages=messages,
                    created_at=now,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[AssistantSession.id],
                    set_={
                        "messages": stmt.excluded.messages,
                        "updated_at": stmt.excluded.updated_at,
                    },
                    where=AssistantSession.messages.is_distinct_from(
                        stmt.excluded.messages
                    ),
                )
                await session.execute(stmt)
                await session.commit()

            logger.debug(
                "Session %s saved (%d messages).", session_id, len(messages)
            )
