"""Tests for statement validation and guarded execution."""

import asyncio
import datetime as dt
import json
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from metis.core.query.guard import (
    QueryGuard,
    QueryResult,
    RejectedStatement,
    _jsonable,
    validate_statement,
)
from metis.core.query.tool import QUERY_TOOL_NAME, QueryDatabaseTool

COUNT_TO = (
    "WITH RECURSIVE n(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM n WHERE x < {limit}) "
    "SELECT x FROM n"
)

# ---------------------------------------------------------------------------
# validate_statement
# ---------------------------------------------------------------------------


class TestValidateStatement:
    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT 1",
            "select * from core.sales_with_product limit 10",
            "  (SELECT 1)",
            "WITH t AS (SELECT 1 AS a) SELECT a FROM t",
            "SELECT 'DROP TABLE x' AS note",
            'SELECT 1 AS "delete"',
            "SELECT 1 -- drop everything\n",
            "SELECT /* update */ 1",
            "SELECT $$DELETE FROM sales$$",
            "SELECT updated_at, created_by FROM t",
        ],
    )
    def test_accepts_read_only_queries(self, sql):
        assert validate_statement(sql)

    @pytest.mark.parametrize(
        "sql",
        [
            "DROP TABLE x; SELECT 1",
            "SELECT 1; DROP TABLE x",
            "DELETE FROM sales",
            "UPDATE sales SET quantity = 0",
            "INSERT INTO sales VALUES (1)",
            "WITH d AS (DELETE FROM sales RETURNING *) SELECT * FROM d",
            "SELECT * INTO backup FROM sales",
            "SELECT * FROM sales FOR UPDATE",
            "EXPLAIN ANALYZE SELECT 1",
            "SET statement_timeout = 0",
            "",
            "   ",
            ";",
        ],
    )
    def test_rejects_everything_else(self, sql):
        with pytest.raises(RejectedStatement):
            validate_statement(sql)

    def test_trailing_semicolons_are_stripped(self):
        assert validate_statement("SELECT 1;;  ") == "SELECT 1"

    def test_semicolon_inside_literal_is_not_a_second_statement(self):
        assert validate_statement("SELECT ';' AS sep") == "SELECT ';' AS sep"

    def test_doubled_quotes_stay_inside_the_literal(self):
        sql = "SELECT 'it''s; DROP TABLE x' AS s"
        assert validate_statement(sql) == sql

    def test_comments_are_removed(self):
        assert validate_statement("SELECT 1 -- trailing note").strip() == "SELECT 1"

    def test_keyword_hidden_after_comment_is_still_seen(self):
        with pytest.raises(RejectedStatement):
            validate_statement("SELECT 1 /* x */; DELETE FROM sales")

    @pytest.mark.parametrize(
        "sql",
        ["SELECT 'open", 'SELECT "open', "SELECT 1 /* open", "SELECT $$open"],
    )
    def test_unterminated_constructs_are_rejected(self, sql):
        with pytest.raises(RejectedStatement):
            validate_statement(sql)


# ---------------------------------------------------------------------------
# QueryGuard.execute (SQLite stands in for the warehouse)
# ---------------------------------------------------------------------------


class TestQueryGuard:
    @pytest.mark.asyncio
    async def test_simple_select(self, sqlite_engine):
        guard = QueryGuard(sqlite_engine)
        result = await guard.execute("SELECT 1 AS one, 'a' AS letter", "smoke")
        assert result.success is True
        assert result.purpose == "smoke"
        assert result.columns == ["one", "letter"]
        assert result.rows == [{"one": 1, "letter": "a"}]
        assert result.row_count == 1
        assert result.truncated is False
        assert result.error is None

    @pytest.mark.asyncio
    async def test_large_result_is_capped_and_flagged(self, sqlite_engine):
        guard = QueryGuard(sqlite_engine, max_rows=200)
        result = await guard.execute(COUNT_TO.format(limit=500))
        assert result.success is True
        assert result.row_count == 200
        assert len(result.rows) == 200
        assert result.truncated is True
        assert result.rows[0] == {"x": 1}
        assert result.rows[-1] == {"x": 200}

    @pytest.mark.asyncio
    async def test_small_result_is_not_truncated(self, sqlite_engine):
        guard = QueryGuard(sqlite_engine, max_rows=200)
        result = await guard.execute(COUNT_TO.format(limit=50))
        assert result.row_count == 50
        assert result.truncated is False

    @pytest.mark.asyncio
    async def test_exactly_max_rows_is_not_truncated(self, sqlite_engine):
        guard = QueryGuard(sqlite_engine, max_rows=10)
        result = await guard.execute(COUNT_TO.format(limit=10))
        assert result.row_count == 10
        assert result.truncated is False

    @pytest.mark.asyncio
    async def test_rejected_statement_is_a_failure_result(self, sqlite_engine):
        guard = QueryGuard(sqlite_engine)
        result = await guard.execute("DROP TABLE x; SELECT 1", "cleanup")
        assert result.success is False
        assert result.purpose == "cleanup"
        assert result.error.startswith("Query rejected:")
        assert result.rows == []

    @pytest.mark.asyncio
    async def test_database_error_is_a_failure_result(self, sqlite_engine):
        guard = QueryGuard(sqlite_engine)
        result = await guard.execute("SELECT missing_column FROM no_such_table")
        assert result.success is False
        assert "no_such_table" in result.error

    @pytest.mark.asyncio
    async def test_colons_are_not_bind_parameters(self, sqlite_engine):
        guard = QueryGuard(sqlite_engine)
        result = await guard.execute("SELECT '10:30' AS t")
        assert result.success is True
        assert result.rows == [{"t": "10:30"}]

    @pytest.mark.asyncio
    async def test_guard_keeps_working_after_a_failure(self, sqlite_engine):
        guard = QueryGuard(sqlite_engine)
        await guard.execute("SELECT nope FROM nowhere")
        result = await guard.execute("SELECT 2 AS two")
        assert result.rows == [{"two": 2}]


class TestJsonable:
    def test_decimal_integral_becomes_int(self):
        assert _jsonable(Decimal("12.000")) == 12

    def test_decimal_fraction_becomes_float(self):
        assert _jsonable(Decimal("1.5")) == 1.5

    def test_dates_become_iso_strings(self):
        assert _jsonable(dt.date(2024, 1, 31)) == "2024-01-31"

    def test_plain_values_pass_through(self):
        assert _jsonable("x") == "x"
        assert _jsonable(None) is None


# ---------------------------------------------------------------------------
# QueryDatabaseTool
# ---------------------------------------------------------------------------


class TestQueryDatabaseTool:
    def test_tool_name(self, sqlite_engine):
        tool = QueryDatabaseTool(guard=QueryGuard(sqlite_engine))
        assert tool.name == QUERY_TOOL_NAME == "queryDatabase"

    @pytest.mark.asyncio
    async def test_tool_returns_result_json(self, sqlite_engine):
        tool = QueryDatabaseTool(guard=QueryGuard(sqlite_engine))
        output = await tool.ainvoke({"sql": "SELECT 3 AS three", "purpose": "test"})
        result = QueryResult.model_validate(json.loads(output))
        assert result.success is True
        assert result.rows == [{"three": 3}]
        assert "error" not in json.loads(output)

    @pytest.mark.asyncio
    async def test_tool_reports_rejection(self, sqlite_engine):
        tool = QueryDatabaseTool(guard=QueryGuard(sqlite_engine))
        output = json.loads(await tool.ainvoke({"sql": "DELETE FROM sales"}))
        assert output["success"] is False
        assert "rejected" in output["error"]

    def test_tool_runs_without_an_event_loop(self):
        engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=NullPool)
        tool = QueryDatabaseTool(guard=QueryGuard(engine))

        accepted = json.loads(tool.invoke({"sql": "SELECT 3 AS three"}))
        rejected = json.loads(tool.invoke({"sql": "DROP TABLE sales"}))

        assert accepted["rows"] == [{"three": 3}]
        assert rejected["success"] is False
        asyncio.run(engine.dispose())
