"""Lifespan and per-request dependencies for session persistence."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from metis.configs.config import AppConfig, get_app_config
from metis.infra.engines import build_db, get_session_factory
from metis.infra.lifespan import get_app

from .saver import SessionSaver
from .sessions import SessionRepository, SessionStore

# ---------------------------------------------------------------------------
# Lifespan dependency
# ---------------------------------------------------------------------------


async def build_session_saver(
    app: Annotated[FastAPI, Depends(get_app)],
    config: Annotated[AppConfig, Depends(get_app_config)],
    _db: Annotated[None, Depends(build_db)],
) -> AsyncGenerator[None, None]:
    """Start the background saver; drain it on shutdown."""
    saver = SessionSaver(
        SessionRepository(app.state.session_factory),
        max_pending=config.session.save_queue_size,
        drain_timeout=config.session.drain_timeout,
    )
    saver.start()
    app.state.session_saver = saver
    yield
    await saver.aclose()


# ---------------------------------------------------------------------------
# Per-request dependencies
# ---------------------------------------------------------------------------


def get_session_store(
    sf: Annotated[
        async_sessionmaker[AsyncSession],
        Depends(get_session_factory),
    ],
) -> SessionStore:
    return SessionRepository(sf)


def get_session_saver(request: Request) -> SessionSaver:
    return request.app.state.session_saver
