"""Read-only execution of model-written SQL.

``validate_statement`` is a lexical gate: it strips comments, blanks out
string literals and quoted identifiers, then only admits one ``SELECT``
(or ``WITH ... SELECT``) statement free of data-modifying keywords.  The
database side backs it up with a ``READ ONLY`` transaction and a
statement timeout, so the lexer only has to be strict, not complete.

``QueryGuard.execute`` never raises for a rejected statement or a
database error: the model gets a structured failure it can read and
correct.  Only cancellation escapes.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import re
import time
import uuid
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeout
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from metis.core.metrics import (
    GUARD_QUERIES_TOTAL,
    GUARD_QUERY_LATENCY_SECONDS,
    GUARD_QUERY_ROWS,
)
from metis.infra.telemetry import (
    ATTR_QUERY_PURPOSE,
    ATTR_QUERY_REJECTED,
    ATTR_QUERY_ROW_COUNT,
    ATTR_QUERY_TRUNCATED,
    SPAN_QUERY_EXECUTE,
    tracer,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 200
DEFAULT_STATEMENT_TIMEOUT = dt.timedelta(seconds=30)
WALL_CLOCK_GRACE_SECONDS = 2.0

ALLOWED_LEADING_KEYWORDS = ("SELECT", "WITH")

FORBIDDEN_SQL_KEYWORDS = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "MERGE",
    "DROP",
    "ALTER",
    "CREATE",
    "TRUNCATE",
    "GRANT",
    "REVOKE",
    "DENY",
    "COPY",
    "CALL",
    "EXEC",
    "EXECUTE",
    "VACUUM",
    "REINDEX",
    "CLUSTER",
    "REFRESH",
    "PREPARE",
    "DEALLOCATE",
    "LISTEN",
    "NOTIFY",
    "DISCARD",
    "RESET",
)

FORBIDDEN_KEYWORD_PATTERN = re.compile(
    r"\b(" + "|".join(FORBIDDEN_SQL_KEYWORDS) + r")\b", re.IGNORECASE
)
SELECT_INTO_PATTERN = re.compile(r"\bINTO\b", re.IGNORECASE)
ROW_LOCK_PATTERN = re.compile(
    r"\bFOR\s+(?:NO\s+KEY\s+UPDATE|UPDATE|KEY\s+SHARE|SHARE)\b", re.IGNORECASE
)
LEADING_KEYWORD_PATTERN = re.compile(r"^[\s(]*([A-Za-z]+)")
DOLLAR_TAG_PATTERN = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")

POSTGRESQL = "postgresql"


# ---------------------------------------------------------------------------
# Errors and results
# ---------------------------------------------------------------------------


class RejectedStatement(ValueError):
    """The statement is not a single read-only query."""


class QueryExecutionFailure(RuntimeError):
    """The database refused or failed to run an admitted statement."""


class QueryResult(BaseModel):
    """What the model sees for one ``queryDatabase`` call."""

    success: bool
    purpose: str = ""
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = Field(default=0, description="Rows returned, after the cap")
    truncated: bool = False
    error: str | None = None

    @classmethod
    def failure(cls, purpose: str, error: str) -> "QueryResult":
        return cls(success=False, purpose=purpose, error=error)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _scan(sql: str) -> tuple[str, str]:
    """Single pass over *sql* returning ``(clean, masked)``.

    ``clean`` is the statement with comments replaced by a space.
    ``masked`` additionally blanks the contents of string literals,
    quoted identifiers and dollar-quoted bodies, so keyword checks never
    look inside them.
    """
    clean: list[str] = []
    masked: list[str] = []
    i, n = 0, len(sql)

    while i < n:
        ch = sql[i]
        nxt = sql[i + 1] if i + 1 < n else ""

        if ch == "-" and nxt == "-":
            end = sql.find("\n", i)
            i = n if end == -1 else end
            clean.append(" ")
            masked.append(" ")
            continue

        if ch == "/" and nxt == "*":
            end = sql.find("*/", i + 2)
            if end == -1:
                raise RejectedStatement("Unterminated block comment.")
            i = end + 2
            clean.append(" ")
            masked.append(" ")
            continue

        if ch in ("'", '"'):
            backslash_escapes = (
                ch == "'"
                and i > 0
                and sql[i - 1] in "eE"
                and (i < 2 or not (sql[i - 2].isalnum() or sql[i - 2] == "_"))
            )
            j = i + 1
            while True:
                if j >= n:
                    raise RejectedStatement("Unterminated quoted string.")
                if backslash_escapes and sql[j] == "\\":
                    j += 2
                    continue
                if sql[j] == ch:
                    if j + 1 < n and sql[j + 1] == ch:
                        j += 2
                        continue
                    break
                j += 1
            clean.append(sql[i : j + 1])
            masked.append(ch + " " * (j - i - 1) + ch)
            i = j + 1
            continue

        if ch == "$":
            tag = DOLLAR_TAG_PATTERN.match(sql, i)
            if tag is not None and not (i > 0 and (sql[i - 1].isalnum() or sql[i - 1] == "_")):
                delimiter = tag.group(0)
                end = sql.find(delimiter, tag.end())
                if end == -1:
                    raise RejectedStatement("Unterminated dollar-quoted string.")
                stop = end + len(delimiter)
                clean.append(sql[i:stop])
                masked.append("''")
                i = stop
                continue

        clean.append(ch)
        masked.append(ch)
        i += 1

    return "".join(clean), "".join(masked)


def _strip_trailing_semicolons(sql: str) -> str:
    sql = sql.strip()
    while sql.endswith(";"):
        sql = sql[:-1].rstrip()
    return sql


def validate_statement(sql: str) -> str:
    """Return the normalized statement or raise :class:`RejectedStatement`."""
    if not sql or not sql.strip():
        raise RejectedStatement("Empty statement.")

    clean, masked = _scan(sql)
    clean = _strip_trailing_semicolons(clean)
    masked = _strip_trailing_semicolons(masked)

    if not masked:
        raise RejectedStatement("Empty statement.")
    if ";" in masked:
        raise RejectedStatement("Multiple SQL statements are not allowed.")

    leading = LEADING_KEYWORD_PATTERN.match(masked)
    if leading is None or leading.group(1).upper() not in ALLOWED_LEADING_KEYWORDS:
        raise RejectedStatement("Only SELECT or WITH ... SELECT statements are allowed.")

    forbidden = FORBIDDEN_KEYWORD_PATTERN.search(masked)
    if forbidden is not None:
        raise RejectedStatement(f"Forbidden keyword: {forbidden.group(1).upper()}.")
    if SELECT_INTO_PATTERN.search(masked):
        raise RejectedStatement("SELECT ... INTO is not allowed.")
    if ROW_LOCK_PATTERN.search(masked):
        raise RejectedStatement("Row-locking clauses are not allowed.")

    return clean


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, memoryview)):
        return bytes(value).hex()
    return value


def _describe(exc: SQLAlchemyError) -> str:
    """First line of the driver's message, which is what the model can act on."""
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        message = str(exc.orig)
    else:
        message = str(exc)
    return message.strip().splitlines()[0] if message.strip() else type(exc).__name__


class QueryGuard:
    """Runs validated statements against the analytical engine."""

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        max_rows: int = DEFAULT_MAX_ROWS,
        statement_timeout: dt.timedelta = DEFAULT_STATEMENT_TIMEOUT,
    ) -> None:
        self._engine = engine
        self._max_rows = max_rows
        self._statement_timeout = statement_timeout

    @property
    def max_rows(self) -> int:
        return self._max_rows

    async def execute(self, sql: str, purpose: str = "") -> QueryResult:
        with tracer.start_as_current_span(SPAN_QUERY_EXECUTE) as span:
            span.set_attribute(ATTR_QUERY_PURPOSE, purpose)
            try:
                statement = validate_statement(sql)
            except RejectedStatement as exc:
                span.set_attribute(ATTR_QUERY_REJECTED, True)
                GUARD_QUERIES_TOTAL.labels(status="rejected").inc()
                logger.info("Rejected tool query (%s): %s", purpose, exc)
                return QueryResult.failure(purpose, f"Query rejected: {exc}")

            start = time.monotonic()
            try:
                columns, rows = await self._run(statement)
            except QueryExecutionFailure as exc:
                GUARD_QUERIES_TOTAL.labels(status="error").inc()
                logger.info("Tool query failed (%s): %s", purpose, exc)
                return QueryResult.failure(purpose, str(exc))
            except TimeoutError:
                GUARD_QUERIES_TOTAL.labels(status="timeout").inc()
                logger.warning("Tool query timed out (%s).", purpose)
                return QueryResult.failure(
                    purpose,
                    "Query timed out after "
                    f"{self._statement_timeout.total_seconds():g}s; "
                    "aggregate more or add filters.",
                )
            finally:
                GUARD_QUERY_LATENCY_SECONDS.observe(time.monotonic() - start)

            truncated = len(rows) > self._max_rows
            rows = rows[: self._max_rows]
            span.set_attribute(ATTR_QUERY_ROW_COUNT, len(rows))
            span.set_attribute(ATTR_QUERY_TRUNCATED, truncated)
            GUARD_QUERIES_TOTAL.labels(status="truncated" if truncated else "ok").inc()
            GUARD_QUERY_ROWS.observe(len(rows))

            return QueryResult(
                success=True,
                purpose=purpose,
                columns=columns,
                rows=rows,
                row_count=len(rows),
                truncated=truncated,
            )

    async def _run(self, statement: str) -> tuple[list[str], list[dict[str, Any]]]:
        """Fetch at most ``max_rows + 1`` rows; the extra one flags truncation."""
        wall_clock = self._statement_timeout.total_seconds() + WALL_CLOCK_GRACE_SECONDS
        try:
            async with asyncio.timeout(wall_clock):
                async with self._engine.connect() as conn:
                    async with conn.begin():
                        await self._restrict(conn)
                        return await self._fetch(conn, statement)
        except PoolTimeout as exc:
            raise QueryExecutionFailure(
                "All database connections are busy; try again shortly."
            ) from exc
        except SQLAlchemyError as exc:
            raise QueryExecutionFailure(_describe(exc)) from exc
        except TimeoutError:
            raise
        except OSError as exc:
            raise QueryExecutionFailure(f"Database unreachable: {exc}") from exc

    async def _restrict(self, conn: AsyncConnection) -> None:
        if conn.dialect.name != POSTGRESQL:
            return
        timeout_ms = int(self._statement_timeout.total_seconds() * 1000)
        await conn.execute(text("SET TRANSACTION READ ONLY"))
        await conn.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))

    async def _fetch(
        self, conn: AsyncConnection, statement: str
    ) -> tuple[list[str], list[dict[str, Any]]]:
        # Escape colons so text() does not read ":name" as a bind parameter.
        query = text(statement.replace(":", "\\:"))
        limit = self._max_rows + 1

        if conn.dialect.supports_server_side_cursors:
            result = await conn.stream(query)
            try:
                columns = list(result.keys())
                fetched = await result.fetchmany(limit)
            finally:
                await result.close()
        else:
            sync_result = await conn.execute(query)
            columns = list(sync_result.keys())
            fetched = sync_result.fetchmany(limit)
            sync_result.close()

        rows = [
            {key: _jsonable(value) for key, value in zip(columns, row)}
            for row in fetched
        ]
        return columns, rows
