"""SQLAlchemy ORM models for the session store.

Tables are managed by Alembic migrations.  The metadata naming
convention keeps constraint names deterministic across environments.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
MessagesJSON = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Shared declarative base."""


Base.metadata.naming_convention = NAMING_CONVENTION


class AssistantSession(Base):
    """One saved conversation, identified by its client-chosen id.

    ``messages`` is the full message list in the wire shape the client
    sent it and is stored as-is.
    """

    __tablename__ = "assistant_sessions"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    dashboard: Mapped[str] = mapped_column(String(128), nullable=False)
    messages: Mapped[list[dict[str, Any]]] = mapped_column(
        MessagesJSON, nullable=False, default=list
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_assistant_sessions_dashboard_updated", "dashboard", "updated_at"),
    )
