"""Prometheus metrics for Metis.

Business metrics that complement the HTTP metrics provided by
``prometheus-fastapi-instrumentator``.  All metrics use the ``metis_``
prefix.
"""

import logging

from fastapi import FastAPI
from prometheus_client import Counter, Gauge, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

from metis.configs.system import TracingConfig

logger = logging.getLogger(__name__)

METRICS_ENDPOINT = "/metrics"

# ---------------------------------------------------------------------------
# Chat stream metrics
# ---------------------------------------------------------------------------

CHAT_STREAMS_ACTIVE = Gauge(
    "metis_chat_streams_active",
    "Number of streaming chat responses currently in progress",
    ["service"],
)

CHAT_STREAMS_TOTAL = Counter(
    "metis_chat_streams_total",
    "Total chat streams, by outcome code",
    ["service", "status"],  # "ok" | "REQUEST_TIMEOUT" | "STREAM_INTERRUPTED" | ...
)

CHAT_STREAM_DURATION_SECONDS = Histogram(
    "metis_chat_stream_duration_seconds",
    "End-to-end duration of a chat streaming response",
    ["service"],
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 180, 300),
)

STREAM_EVENTS_TOTAL = Counter(
    "metis_stream_events_total",
    "Total stream events emitted, by event type",
    ["service", "event_type"],  # content | tool_call | step_budget | error
)

TOOL_CALLS_TOTAL = Counter(
    "metis_tool_calls_total",
    "Total tool invocations, by tool name and outcome",
    ["service", "tool_name", "status"],  # started | completed | error
)

# ---------------------------------------------------------------------------
# Fallback gateway metrics
# ---------------------------------------------------------------------------

CANDIDATE_ATTEMPTS_TOTAL = Counter(
    "metis_candidate_attempts_total",
    "Model candidate attempts, by model and outcome",
    ["model", "outcome"],  # served | rate_limited | timeout | unreachable | ...
)

CANDIDATES_EXHAUSTED_TOTAL = Counter(
    "metis_candidates_exhausted_total",
    "Requests for which every model candidate failed before streaming",
)

# ---------------------------------------------------------------------------
# Query guard metrics
# ---------------------------------------------------------------------------

GUARD_QUERIES_TOTAL = Counter(
    "metis_guard_queries_total",
    "Tool queries, by outcome",
    ["status"],  # "ok" | "truncated" | "rejected" | "error" | "timeout"
)

GUARD_QUERY_LATENCY_SECONDS = Histogram(
    "metis_guard_query_latency_seconds",
    "Latency of executed tool queries",
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)

GUARD_QUERY_ROWS = Histogram(
    "metis_guard_query_rows",
    "Rows returned to the model per successful query",
    buckets=(0, 1, 5, 20, 50, 100, 200),
)

# ---------------------------------------------------------------------------
# Session persistence metrics
# ---------------------------------------------------------------------------

SESSION_SAVES_TOTAL = Counter(
    "metis_session_saves_total",
    "Background session saves, by outcome",
    ["status"],  # "ok" | "error" | "dropped"
)

SESSION_SAVES_PENDING = Gauge(
    "metis_session_saves_pending",
    "Session saves waiting in the background queue",
)


# ---------------------------------------------------------------------------
# HTTP instrumentation
# ---------------------------------------------------------------------------


def setup_metrics(app: FastAPI, tracing: TracingConfig) -> None:
    """Attach ``prometheus-fastapi-instrumentator`` and expose ``/metrics``.

    Adds middleware, so it runs in the app factory rather than the lifespan.
    """
    Instrumentator(
        should_instrument_requests_inprogress=True,
        excluded_handlers=tracing.excluded_urls,
    ).instrument(app).expose(app, endpoint=METRICS_ENDPOINT)

    logger.info("Prometheus metrics initialised")
