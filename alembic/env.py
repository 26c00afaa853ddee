"""Alembic environment for the session database (async).

The database URL comes from ``METIS_THIRD_PARTY__POSTGRES_URI`` when set,
otherwise from the ``ThirdPartyConfig`` default, so migrations target
the same database locally, in CI and in Kubernetes.  Only the session
store is migrated; the analytical warehouse is read-only to Metis.
"""

import asyncio
import os

from alembic import context
from sqlalchemy.ext.asyncio import create_async_engine

from metis.infra.db.models import Base

target_metadata = Base.metadata

DATABASE_URL_ENV = "METIS_THIRD_PARTY__POSTGRES_URI"


def _get_database_url() -> str:
    url = os.environ.get(DATABASE_URL_ENV)
    if url:
        return url
    from metis.configs.system import ThirdPartyConfig

    return ThirdPartyConfig().postgres_uri


def run_migrations_offline() -> None:
    """Emit SQL without a live database."""
    context.configure(
        url=_get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(_get_database_url())
    async with engine.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
