"""Read-only SQL execution for model tool calls."""

from .guard import (  # noqa: F401
    QueryExecutionFailure,
    QueryGuard,
    QueryResult,
    RejectedStatement,
    validate_statement,
)
from .tool import QUERY_TOOL_NAME, QueryDatabaseInput, QueryDatabaseTool  # noqa: F401
