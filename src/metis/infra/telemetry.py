"""OpenTelemetry bootstrap: tracing initialisation and helpers.

Configures a ``TracerProvider`` with an OTLP HTTP exporter when tracing is
enabled via ``TracingConfig``.  Without it the module is a no-op, which is
the normal case for local development.

Auto-instrumentations wired here:

- **FastAPI** (inbound HTTP spans), attached by the app factory
- **httpx** (outbound HTTP spans, which covers model backend calls)
- **SQLAlchemy** (session store and warehouse spans)

``build_telemetry`` is a lifespan dependency.  It ``Depends`` on both
engine builders so the engines exist before they are instrumented.

Usage::

    from metis.infra.telemetry import SPAN_QUERY_EXECUTE, tracer

    with tracer.start_as_current_span(SPAN_QUERY_EXECUTE) as span:
        ...
"""

from __future__ import annotations

import base64
import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, FastAPI
from opentelemetry import trace

from metis.configs.system import TracingConfig
from metis.infra.engines import build_db, build_warehouse
from metis.infra.lifespan import get_app

logger = logging.getLogger(__name__)

_otel_enabled = False

tracer = trace.get_tracer("metis")

# ---------------------------------------------------------------------------
# Span names
# ---------------------------------------------------------------------------

SPAN_SSE_STREAM = "sse.stream"
SPAN_GATEWAY_OPEN = "gateway.open"
SPAN_GATEWAY_ATTEMPT = "gateway.attempt"
SPAN_QUERY_EXECUTE = "query.execute"
SPAN_SESSION_RESUME = "session.resume"
SPAN_SESSION_UPSERT = "session.upsert"

# ---------------------------------------------------------------------------
# Span attribute keys
# ---------------------------------------------------------------------------

ATTR_SSE_ERROR_CODE = "sse.error_code"
ATTR_SSE_EVENT_COUNTS = "sse.event_counts"
ATTR_SSE_SERVICE = "sse.service"

ATTR_GATEWAY_MODEL = "gateway.model"
ATTR_GATEWAY_CANDIDATE_INDEX = "gateway.candidate_index"
ATTR_GATEWAY_OUTCOME = "gateway.outcome"

ATTR_QUERY_PURPOSE = "query.purpose"
ATTR_QUERY_ROW_COUNT = "query.row_count"
ATTR_QUERY_TRUNCATED = "query.truncated"
ATTR_QUERY_REJECTED = "query.rejected"

ATTR_SESSION_DASHBOARD = "session.dashboard"
ATTR_SESSION_ID = "session.id"
ATTR_SESSION_MESSAGE_COUNT = "session.message_count"


def init_telemetry(
    app: object | None = None,
    settings: TracingConfig | None = None,
) -> None:
    """Initialise the OTEL ``TracerProvider`` and auto-instrumentations.

    Parameters
    ----------
    app:
        The FastAPI application.  Passed to the FastAPI instrumentor so
        it can attach its ASGI middleware; must be called before startup.
    settings:
        Tracing configuration.  ``None`` or ``enabled=False`` is a no-op.
    """
    global _otel_enabled  # noqa: PLW0603

    if settings is None or not settings.enabled:
        logger.info("OpenTelemetry tracing disabled.")
        return

    if not settings.endpoint:
        logger.warning("Tracing enabled without an endpoint; skipping OTEL setup.")
        return

    from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
        OTLPSpanExporter,
    )
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

    resource = Resource.create({"service.name": settings.service_name})
    sampler = ParentBased(root=TraceIdRatioBased(settings.sample_rate))
    provider = TracerProvider(resource=resource, sampler=sampler)

    headers: dict[str, str] = {}
    if settings.username and settings.password:
        credentials = f"{settings.username}:{settings.password}"
        encoded = base64.b64encode(credentials.encode()).decode()
        headers["Authorization"] = f"Basic {encoded}"

    exporter = OTLPSpanExporter(endpoint=settings.endpoint, headers=headers)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    if app is not None:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        excluded = ",".join(settings.excluded_urls)
        FastAPIInstrumentor.instrument_app(app, excluded_urls=excluded)

    from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

    HTTPXClientInstrumentor().instrument()

    _otel_enabled = True
    logger.info(
        "OpenTelemetry tracing initialised (service=%s).", settings.service_name
    )


def instrument_sqlalchemy(engine: object) -> None:
    """Instrument an (async) SQLAlchemy engine. No-op when OTEL is off."""
    if not _otel_enabled:
        return

    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

    sync_engine = getattr(engine, "sync_engine", engine)
    SQLAlchemyInstrumentor().instrument(engine=sync_engine)
    logger.info("SQLAlchemy engine instrumented for OTEL tracing.")


# ---------------------------------------------------------------------------
# Lifespan dependency
# ---------------------------------------------------------------------------


async def build_telemetry(
    app: Annotated[FastAPI, Depends(get_app)],
    _db: Annotated[None, Depends(build_db)],
    _warehouse: Annotated[None, Depends(build_warehouse)],
) -> AsyncGenerator[None, None]:
    """Instrument the session and warehouse engines for tracing."""
    instrument_sqlalchemy(app.state.engine)
    instrument_sqlalchemy(app.state.warehouse_engine)
    yield
