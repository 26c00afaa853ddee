"""The ``queryDatabase`` tool the model calls to read the warehouse."""

from __future__ import annotations

import asyncio
from typing import Any, Type

from langchain_core.tools import BaseTool
from pydantic import BaseModel, Field

from .guard import QueryGuard

QUERY_TOOL_NAME = "queryDatabase"

QUERY_TOOL_DESCRIPTION = (
    "Run ONE read-only SQL query (PostgreSQL) against the sales and stock "
    "views and get the rows back as JSON. Only SELECT / WITH statements are "
    "accepted and at most 200 rows are returned (truncated=true when more "
    "rows matched). On success=false, read the error, fix the SQL and retry."
)


class QueryDatabaseInput(BaseModel):
    sql: str = Field(description="A single SELECT (or WITH ... SELECT) statement")
    purpose: str = Field(
        default="",
        description="One short sentence on what this query answers",
    )


class QueryDatabaseTool(BaseTool):
    """LangChain tool wrapper around :class:`QueryGuard`."""

    name: str = QUERY_TOOL_NAME
    description: str = QUERY_TOOL_DESCRIPTION
    args_schema: Type[BaseModel] = QueryDatabaseInput

    guard: QueryGuard

    def _run(self, sql: str, purpose: str = "", **kwargs: Any) -> str:
        """Blocking variant for callers without a running event loop.

        The engine must not hold pooled connections from another loop.
        """
        return asyncio.run(self._arun(sql, purpose))

    async def _arun(self, sql: str, purpose: str = "", **kwargs: Any) -> str:
        result = await self.guard.execute(sql, purpose)
        return result.model_dump_json(exclude_none=True)
