"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, FastAPI

from metis.api.chat import router as chat_router
from metis.api.exceptions import register_exception_handlers
from metis.api.sessions import router as sessions_router
from metis.configs.config import AppConfig, get_app_config
from metis.core.metrics import setup_metrics
from metis.infra.db import build_session_saver
from metis.infra.lifespan import inject
from metis.infra.logging import setup_logging
from metis.infra.telemetry import build_telemetry, init_telemetry

logger = logging.getLogger(__name__)

APP_TITLE = "Metis"
APP_VERSION = "0.1.0"


@inject
async def lifespan(
    app: FastAPI,
    _telemetry: Annotated[None, Depends(build_telemetry)],
    _saver: Annotated[None, Depends(build_session_saver)],
) -> AsyncGenerator[None, None]:
    """Engines, instrumentation and the session saver come from their builders."""
    logger.info("Metis started.")
    yield
    logger.info("Metis shutting down.")


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or get_app_config()
    setup_logging(config.logging)

    app = FastAPI(
        title=APP_TITLE,
        description="Conversational analyst for the Accurate sales dashboard",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    # Middleware and handlers must exist before the first ASGI call.
    register_exception_handlers(app)
    init_telemetry(app, config.tracing)
    setup_metrics(app, config.tracing)

    app.include_router(chat_router)
    app.include_router(sessions_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
