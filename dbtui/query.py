"""Query execution services for the query pad."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Protocol

from .adapters import AdapterError
from .models import QueryResult
from .pagination import DEFAULT_PAGE_SIZE

LOG = logging.getLogger(__name__)

HISTORY_LIMIT = 50

_SELECT_RE = re.compile(r"\bselect\b", re.IGNORECASE)
_FROM_RE = re.compile(r"\bfrom\b", re.IGNORECASE)
_LIMIT_RE = re.compile(r"\blimit\b", re.IGNORECASE)


class QueryExecutionError(RuntimeError):
    """Raised when a query fails to execute."""


class SqlRunner(Protocol):
    """Anything that can run SQL text and hand back a normalized result."""

    async def execute(self, sql: str) -> QueryResult: ...


def is_row_returning(sql: str) -> bool:
    """Only statements that start with SELECT are treated as row-returning."""

    return sql.strip().upper().startswith("SELECT")


def _strip_terminator(sql: str) -> str:
    return sql.rstrip().rstrip(";").rstrip()


def generate_count_query(sql: str) -> str:
    """Derive a ``SELECT COUNT(*)`` statement that ignores any trailing LIMIT."""

    cleaned = sql.strip()
    limits = list(_LIMIT_RE.finditer(cleaned))
    if limits:
        cleaned = cleaned[: limits[-1].start()].strip()
    cleaned = _strip_terminator(cleaned)
    match = _FROM_RE.search(cleaned)
    if match:
        return f"SELECT COUNT(*) {cleaned[match.start():]}"
    # PostgreSQL and MySQL reject derived tables without an alias.
    return f"SELECT COUNT(*) FROM ({cleaned}) AS counted"


def auto_limit_query(sql: str, page_size: int = DEFAULT_PAGE_SIZE) -> str:
    """Append ``LIMIT page_size`` to SELECT statements that have no LIMIT."""

    if _SELECT_RE.search(sql) and not _LIMIT_RE.search(sql):
        return f"{_strip_terminator(sql)} LIMIT {page_size}"
    return sql


class QueryExecutor:
    """Runs statements through a connection handle with pagination-aware rewrites."""

    def __init__(self, *, page_size: int = DEFAULT_PAGE_SIZE, timeout: float | None = None) -> None:
        self._page_size = page_size
        self._timeout = timeout

    @property
    def page_size(self) -> int:
        return self._page_size

    async def run(self, handle: SqlRunner, sql: str) -> QueryResult:
        statement = sql.strip()
        if not statement:
            raise QueryExecutionError("Provide SQL to execute.")
        total_count: int | None = None
        if is_row_returning(statement):
            total_count = await self._total_count(handle, statement)
        limited = auto_limit_query(statement, self._page_size)
        try:
            result = await self._execute(handle, limited)
        except AdapterError as exc:
            raise QueryExecutionError(str(exc)) from exc
        except asyncio.TimeoutError as exc:
            raise QueryExecutionError(f"Query timed out after {self._timeout:g}s.") from exc
        return result.with_total_count(total_count)

    async def _total_count(self, handle: SqlRunner, statement: str) -> int:
        count_query = generate_count_query(statement)
        try:
            result = await self._execute(handle, count_query)
        except Exception:
            LOG.info("Count query failed; total defaults to 0", extra={"count_query": count_query}, exc_info=True)
            return 0
        if not result.rows or not result.rows[0]:
            return 0
        try:
            return int(result.rows[0][0])
        except ValueError:
            return 0

    async def _execute(self, handle: SqlRunner, sql: str) -> QueryResult:
        if self._timeout is None:
            return await handle.execute(sql)
        return await asyncio.wait_for(handle.execute(sql), self._timeout)


class QueryHistory:
    """Recently executed statements, oldest first, without duplicates."""

    def __init__(self, limit: int = HISTORY_LIMIT) -> None:
        self._limit = limit
        self._entries: list[str] = []

    @property
    def entries(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def record(self, sql: str) -> None:
        if sql in self._entries:
            return
        self._entries.append(sql)
        if len(self._entries) > self._limit:
            del self._entries[0]

    def __len__(self) -> int:
        return len(self._entries)


__all__ = [
    "HISTORY_LIMIT",
    "QueryExecutionError",
    "QueryExecutor",
    "QueryHistory",
    "SqlRunner",
    "auto_limit_query",
    "generate_count_query",
    "is_row_returning",
]
