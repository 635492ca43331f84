"""Tests for query execution helpers."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from dbtui import adapters
from dbtui.adapters import AdapterError
from dbtui.models import ConnectionDescriptor, QueryResult
from dbtui.query import (
    QueryExecutionError,
    QueryExecutor,
    QueryHistory,
    auto_limit_query,
    generate_count_query,
    is_row_returning,
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _result(*rows: tuple[str, ...], columns: tuple[str, ...] = ("value",)) -> QueryResult:
    return QueryResult(columns=columns, rows=tuple(rows), elapsed_ms=1)


class _FakeRunner:
    def __init__(self, respond: Callable[[str], QueryResult]) -> None:
        self._respond = respond
        self.calls: list[str] = []

    async def execute(self, sql: str) -> QueryResult:
        self.calls.append(sql)
        return self._respond(sql)


@pytest.mark.parametrize(
    ("sql", "expected"),
    [
        ("SELECT * FROM t WHERE x=1 LIMIT 10;", "SELECT COUNT(*) FROM t WHERE x=1"),
        ("select name from users;", "SELECT COUNT(*) from users"),
        ("SELECT * FROM t ORDER BY id limit 5 offset 10", "SELECT COUNT(*) FROM t ORDER BY id"),
        ("SELECT 1", "SELECT COUNT(*) FROM (SELECT 1) AS counted"),
        ("SELECT limitless FROM fromage", "SELECT COUNT(*) FROM fromage"),
    ],
)
def test_generate_count_query(sql: str, expected: str) -> None:
    assert generate_count_query(sql) == expected


@pytest.mark.parametrize(
    ("sql", "expected"),
    [
        ("SELECT * FROM t;", "SELECT * FROM t LIMIT 50"),
        ("select id from t", "select id from t LIMIT 50"),
        ("SELECT * FROM t LIMIT 5", "SELECT * FROM t LIMIT 5"),
        ("UPDATE t SET a = 1", "UPDATE t SET a = 1"),
    ],
)
def test_auto_limit_query(sql: str, expected: str) -> None:
    assert auto_limit_query(sql, 50) == expected


def test_auto_limit_query_is_idempotent() -> None:
    once = auto_limit_query("SELECT * FROM accounts;", 25)

    assert auto_limit_query(once, 25) == once


def test_is_row_returning() -> None:
    assert is_row_returning("  select 1")
    assert not is_row_returning("WITH x AS (SELECT 1) SELECT * FROM x")
    assert not is_row_returning("DELETE FROM t")


@pytest.mark.anyio
async def test_executor_counts_then_runs_limited_query() -> None:
    def _respond(sql: str) -> QueryResult:
        if sql.startswith("SELECT COUNT(*)"):
            return _result(("120",), columns=("COUNT(*)",))
        return _result(("a",), ("b",))

    runner = _FakeRunner(_respond)
    executor = QueryExecutor(page_size=50)

    result = await executor.run(runner, "SELECT * FROM t;")

    assert runner.calls == ["SELECT COUNT(*) FROM t", "SELECT * FROM t LIMIT 50"]
    assert result.total_count == 120
    assert result.rows == (("a",), ("b",))


@pytest.mark.anyio
async def test_executor_count_failure_defaults_to_zero() -> None:
    def _respond(sql: str) -> QueryResult:
        if sql.startswith("SELECT COUNT(*)"):
            raise AdapterError("count not supported")
        return _result(("a",))

    result = await QueryExecutor().run(_FakeRunner(_respond), "SELECT value FROM t")

    assert result.total_count == 0
    assert result.rows == (("a",),)


@pytest.mark.anyio
async def test_executor_skips_count_for_writes() -> None:
    runner = _FakeRunner(lambda _sql: QueryResult(columns=(), rows=(), elapsed_ms=2, affected_rows=3))

    result = await QueryExecutor().run(runner, "UPDATE t SET a = 1")

    assert runner.calls == ["UPDATE t SET a = 1"]
    assert result.total_count is None
    assert result.affected_rows == 3


@pytest.mark.anyio
async def test_executor_rejects_empty_sql() -> None:
    runner = _FakeRunner(lambda _sql: _result())

    with pytest.raises(QueryExecutionError):
        await QueryExecutor().run(runner, "   ")
    assert runner.calls == []


@pytest.mark.anyio
async def test_executor_wraps_adapter_errors() -> None:
    def _respond(sql: str) -> QueryResult:
        raise AdapterError('relation "missing" does not exist')

    with pytest.raises(QueryExecutionError, match="missing"):
        await QueryExecutor().run(_FakeRunner(_respond), "SELECT * FROM missing")


@pytest.mark.anyio
async def test_executor_timeout_becomes_execution_error() -> None:
    class _SlowRunner:
        async def execute(self, sql: str) -> QueryResult:
            await asyncio.sleep(1)
            return _result()

    executor = QueryExecutor(timeout=0.01)

    with pytest.raises(QueryExecutionError, match="timed out"):
        await executor.run(_SlowRunner(), "SELECT * FROM t")


@pytest.mark.anyio
async def test_executor_against_sqlite_reports_true_total() -> None:
    handle = await adapters.connect(ConnectionDescriptor(name="Memory", uri="sqlite::memory:"))
    try:
        await handle.execute("CREATE TABLE numbers (value INTEGER)")
        await handle.execute(
            "WITH RECURSIVE seq(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM seq WHERE x < 120) "
            "INSERT INTO numbers (value) SELECT x FROM seq"
        )
        result = await QueryExecutor(page_size=50).run(handle, "SELECT value FROM numbers ORDER BY value")
    finally:
        await handle.close()

    assert result.total_count == 120
    assert result.row_count == 50
    assert result.rows[0] == ("1",)


@pytest.mark.anyio
async def test_executor_select_literal_on_sqlite() -> None:
    handle = await adapters.connect(ConnectionDescriptor(name="Memory", uri="sqlite::memory:"))
    try:
        result = await QueryExecutor().run(handle, "SELECT 1")
    finally:
        await handle.close()

    assert result.columns == ("1",)
    assert result.rows == (("1",),)
    assert result.total_count == 1


def test_history_deduplicates_and_caps() -> None:
    history = QueryHistory(limit=3)

    for sql in ("SELECT 1", "SELECT 2", "SELECT 1", "SELECT 3", "SELECT 4"):
        history.record(sql)

    assert history.entries == ("SELECT 2", "SELECT 3", "SELECT 4")
    assert len(history) == 3
