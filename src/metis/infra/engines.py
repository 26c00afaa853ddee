"""Async SQLAlchemy engines for both databases (**leaf module**).

Metis talks to two PostgreSQL databases:

- the *session* database, read and written by the session store;
- the *warehouse*, holding the sales and stock views the assistant
  queries through the query guard.

Each has its own ``build_*`` lifespan dependency that puts the engine on
``app.state`` and disposes it on shutdown.  The warehouse gets a small
pool with no overflow, so tool queries queue up instead of starving
session persistence.

Kept outside the ``db`` package so that ``telemetry`` can depend on the
builders without importing the repositories.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from metis.configs.config import AppConfig, get_app_config
from metis.configs.system import QueryConfig, ThirdPartyConfig
from metis.infra.lifespan import get_app


def create_session_engine(config: ThirdPartyConfig) -> AsyncEngine:
    return create_async_engine(
        config.postgres_uri,
        pool_pre_ping=True,
        pool_size=config.postgres_pool_size,
        max_overflow=config.postgres_max_overflow,
    )


def create_warehouse_engine(uri: str, config: QueryConfig) -> AsyncEngine:
    """At most ``pool_size`` concurrent analytical queries; waiters time out."""
    return create_async_engine(
        uri,
        pool_pre_ping=True,
        pool_size=config.pool_size,
        max_overflow=0,
        pool_timeout=config.pool_timeout.total_seconds(),
        pool_recycle=int(config.pool_recycle.total_seconds()),
    )


# ---------------------------------------------------------------------------
# Lifespan dependencies
# ---------------------------------------------------------------------------


async def build_db(
    app: Annotated[FastAPI, Depends(get_app)],
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> AsyncGenerator[None, None]:
    """Session database: ``app.state.engine`` and ``app.state.session_factory``."""
    engine = create_session_engine(config.third_party)
    app.state.engine = engine
    app.state.session_factory = async_sessionmaker(engine, expire_on_commit=False)
    yield
    await engine.dispose()


async def build_warehouse(
    app: Annotated[FastAPI, Depends(get_app)],
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> AsyncGenerator[None, None]:
    """Analytical warehouse: ``app.state.warehouse_engine``."""
    engine = create_warehouse_engine(config.third_party.warehouse_uri, config.query)
    app.state.warehouse_engine = engine
    yield
    await engine.dispose()


# ---------------------------------------------------------------------------
# Per-request dependencies
# ---------------------------------------------------------------------------


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_factory
