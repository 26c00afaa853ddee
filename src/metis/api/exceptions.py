"""Global exception handlers, registered by the app factory."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from metis.core.gateway.errors import CandidatesExhausted

logger = logging.getLogger(__name__)

CODE_ALL_MODELS_FAILED = "ALL_MODELS_FAILED"
CODE_PERSISTENCE_UNAVAILABLE = "PERSISTENCE_UNAVAILABLE"


async def handle_candidates_exhausted(
    request: Request, exc: CandidatesExhausted
) -> JSONResponse:
    last = exc.last_error
    return JSONResponse(
        status_code=503,
        content={
            "error": "All AI models are currently unavailable. Please try again later.",
            "detail": last.message if last else str(exc),
            "code": CODE_ALL_MODELS_FAILED,
            "attempts": [e.as_dict() for e in exc.errors],
        },
    )


async def handle_persistence_error(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    logger.error("Session database error on %s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=503,
        content={
            "error": "Session storage is unavailable.",
            "detail": type(exc).__name__,
            "code": CODE_PERSISTENCE_UNAVAILABLE,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CandidatesExhausted, handle_candidates_exhausted)
    app.add_exception_handler(SQLAlchemyError, handle_persistence_error)
