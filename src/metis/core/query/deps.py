"""Per-request dependencies for the query guard and its tool."""

from typing import Annotated

from fastapi import Depends, Request

from metis.configs.config import AppConfig, get_app_config

from .guard import QueryGuard
from .tool import QueryDatabaseTool


def get_query_guard(
    request: Request,
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> QueryGuard:
    """Guard over the warehouse engine built by ``build_warehouse``."""
    return QueryGuard(
        request.app.state.warehouse_engine,
        max_rows=config.query.max_rows,
        statement_timeout=config.query.statement_timeout,
    )


def get_query_tool(
    guard: Annotated[QueryGuard, Depends(get_query_guard)],
) -> QueryDatabaseTool:
    return QueryDatabaseTool(guard=guard)
