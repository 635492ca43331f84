"""Engine adapters that execute SQL and introspect schemas for each backend."""

from __future__ import annotations

import logging
import ssl
import time
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, Protocol, Sequence
from urllib.parse import parse_qs, unquote, urlsplit

import aiomysql
import aiosqlite
import asyncpg

from .models import (
    ColumnDescriptor,
    ConnectionDescriptor,
    EngineKind,
    QueryResult,
    TableDescriptor,
    TlsMode,
    TlsPolicy,
)

LOG = logging.getLogger(__name__)

SERVER_POOL_SIZE = 5
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
NULL_DISPLAY = "NULL"
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1


class AdapterError(RuntimeError):
    """Raised when an engine rejects a connection, statement or catalog query."""


@dataclass(frozen=True, slots=True)
class ConnectionHandle:
    """Open engine-specific pool plus the descriptor it was opened from."""

    descriptor: ConnectionDescriptor
    pool: Any

    @property
    def kind(self) -> EngineKind:
        return self.descriptor.kind

    async def execute(self, sql: str) -> QueryResult:
        return await adapter_for(self.kind).execute(self, sql)

    async def list_tables(self) -> list[TableDescriptor]:
        return await adapter_for(self.kind).list_tables(self)

    async def list_columns(self, table: str, schema: str | None = None) -> list[ColumnDescriptor]:
        return await adapter_for(self.kind).list_columns(self, table, schema)

    async def close(self) -> None:
        await adapter_for(self.kind).close(self)


class BackendAdapter(Protocol):
    """Capability set implemented once per engine kind."""

    kind: EngineKind

    async def connect(self, descriptor: ConnectionDescriptor) -> ConnectionHandle:
        """Open a pool for the descriptor."""

    async def list_tables(self, handle: ConnectionHandle) -> list[TableDescriptor]:
        """Enumerate user tables with a best-effort row count."""

    async def list_columns(
        self,
        handle: ConnectionHandle,
        table: str,
        schema: str | None = None,
    ) -> list[ColumnDescriptor]:
        """Describe the columns of one table."""

    async def execute(self, handle: ConnectionHandle, sql: str) -> QueryResult:
        """Run raw SQL text and return a normalized result."""

    async def close(self, handle: ConnectionHandle) -> None:
        """Release the pool held by the handle."""


# Cell coercion ---------------------------------------------------------------


def _read_text(value: object) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError:
            return None
    return None


def _read_integer(value: object) -> str | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    if _I64_MIN <= value <= _I64_MAX:
        return str(value)
    return None


def _read_float(value: object) -> str | None:
    if isinstance(value, float):
        return str(value)
    if isinstance(value, Decimal) and value.is_finite():
        return str(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return str(float(value))
    return None


def _read_boolean(value: object) -> str | None:
    if isinstance(value, bool):
        return "true" if value else "false"
    return None


def _read_timestamp(value: object) -> str | None:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime(TIMESTAMP_FORMAT)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).strftime(TIMESTAMP_FORMAT)
    return None


_CELL_READERS: tuple[Callable[[object], str | None], ...] = (
    _read_text,
    _read_integer,
    _read_float,
    _read_boolean,
    _read_timestamp,
)


def coerce_cell(value: object) -> str:
    """Render a driver value for display using the shared fallback chain."""

    for reader in _CELL_READERS:
        text = reader(value)
        if text is not None:
            return text
    return NULL_DISPLAY


def _unique_columns(names: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    columns: list[str] = []
    for name in names:
        label = name
        suffix = 1
        while label in seen:
            suffix += 1
            label = f"{name}_{suffix}"
        seen.add(label)
        columns.append(label)
    return tuple(columns)


def _normalize_rows(width: int, records: Iterable[Sequence[object]]) -> tuple[tuple[str, ...], ...]:
    rows: list[tuple[str, ...]] = []
    for record in records:
        cells = [coerce_cell(record[idx]) if idx < len(record) else NULL_DISPLAY for idx in range(width)]
        rows.append(tuple(cells))
    return tuple(rows)


def _build_result(
    names: Sequence[str],
    records: Iterable[Sequence[object]],
    started: float,
    *,
    affected_rows: int | None = None,
) -> QueryResult:
    columns = _unique_columns(str(name) for name in names)
    rows = _normalize_rows(len(columns), records)
    elapsed_ms = int((time.perf_counter() - started) * 1000)
    return QueryResult(columns=columns, rows=rows, elapsed_ms=elapsed_ms, affected_rows=affected_rows)


def _quote(identifier: str, quote: str = '"') -> str:
    return f"{quote}{identifier.replace(quote, quote * 2)}{quote}"


def build_ssl_context(policy: TlsPolicy | None) -> ssl.SSLContext | bool | None:
    """Translate a structured TLS policy into driver ``ssl=`` arguments.

    ``None`` leaves negotiation to the URI, ``False`` disables TLS.
    """

    if policy is None:
        return None
    if policy.mode is TlsMode.DISABLED:
        return False
    context = ssl.create_default_context(cafile=policy.ca_file)
    if policy.mode is TlsMode.REQUIRE:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    elif policy.mode is TlsMode.VERIFY_CA:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_REQUIRED
    if policy.cert_file:
        context.load_cert_chain(policy.cert_file, policy.key_file)
    return context


# SQLite ------------------------------------------------------------------------


def sqlite_target(uri: str) -> tuple[str, bool]:
    """Return the ``sqlite3`` database argument and whether it is a URI."""

    target = uri[len("sqlite:"):]
    if target.startswith("//"):
        target = target[2:]
    path, _, query = target.partition("?")
    if not path:
        path = ":memory:"
    if query:
        return f"file:{path}?{query}", True
    return path, False


class SqliteAdapter:
    """Embedded engine adapter backed by a single aiosqlite connection."""

    kind = EngineKind.SQLITE

    _TABLES_QUERY = "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"

    async def connect(self, descriptor: ConnectionDescriptor) -> ConnectionHandle:
        database, is_uri = sqlite_target(descriptor.uri)
        try:
            # The file-backed engine serializes writers, so one connection is the pool.
            conn = await aiosqlite.connect(database, uri=is_uri, isolation_level=None)
        except Exception as exc:
            raise AdapterError(f"Failed to connect to '{descriptor.name}': {exc}") from exc
        return ConnectionHandle(descriptor=descriptor, pool=conn)

    async def list_tables(self, handle: ConnectionHandle) -> list[TableDescriptor]:
        conn: aiosqlite.Connection = handle.pool
        try:
            async with conn.execute(self._TABLES_QUERY) as cursor:
                names = [str(row[0]) for row in await cursor.fetchall()]
        except Exception as exc:
            raise AdapterError(f"Failed to list tables: {exc}") from exc
        tables = []
        for name in names:
            tables.append(TableDescriptor(name=name, row_count=await self._row_count(conn, name)))
        return tables

    async def list_columns(
        self,
        handle: ConnectionHandle,
        table: str,
        schema: str | None = None,
    ) -> list[ColumnDescriptor]:
        conn: aiosqlite.Connection = handle.pool
        try:
            async with conn.execute(f"PRAGMA table_info({_quote(table)})") as cursor:
                rows = await cursor.fetchall()
        except Exception as exc:
            raise AdapterError(f"Failed to list columns for '{table}': {exc}") from exc
        # table_info rows: cid, name, type, notnull, dflt_value, pk
        return [
            ColumnDescriptor(
                name=str(row[1]),
                data_type=str(row[2] or ""),
                nullable=int(row[3]) == 0,
                primary_key=int(row[5]) > 0,
            )
            for row in rows
        ]

    async def execute(self, handle: ConnectionHandle, sql: str) -> QueryResult:
        conn: aiosqlite.Connection = handle.pool
        started = time.perf_counter()
        try:
            async with conn.execute(sql) as cursor:
                records = await cursor.fetchall()
                description = cursor.description
                rowcount = cursor.rowcount
        except Exception as exc:
            raise AdapterError(str(exc)) from exc
        if not description:
            return _build_result((), (), started, affected_rows=max(rowcount, 0))
        return _build_result([entry[0] for entry in description], records, started)

    async def close(self, handle: ConnectionHandle) -> None:
        await handle.pool.close()

    async def _row_count(self, conn: aiosqlite.Connection, table: str) -> int | None:
        try:
            async with conn.execute(f"SELECT COUNT(*) FROM {_quote(table)}") as cursor:
                row = await cursor.fetchone()
        except Exception:
            LOG.warning("Row count query failed", extra={"table": table}, exc_info=True)
            return None
        return int(row[0]) if row else None


# PostgreSQL ----------------------------------------------------------------------


class PostgresAdapter:
    """Server engine adapter backed by an asyncpg pool."""

    kind = EngineKind.POSTGRES

    _TABLES_QUERY = """
        SELECT schemaname, tablename
        FROM pg_tables
        WHERE schemaname NOT IN ('information_schema', 'pg_catalog')
        ORDER BY schemaname, tablename
    """

    _COLUMNS_QUERY = """
        SELECT c.column_name, c.data_type, c.is_nullable,
               EXISTS (
                   SELECT 1
                   FROM information_schema.table_constraints tc
                   JOIN information_schema.key_column_usage kcu
                     ON kcu.constraint_name = tc.constraint_name
                    AND kcu.table_schema = tc.table_schema
                    AND kcu.table_name = tc.table_name
                   WHERE tc.constraint_type = 'PRIMARY KEY'
                     AND tc.table_schema = c.table_schema
                     AND tc.table_name = c.table_name
                     AND kcu.column_name = c.column_name
               ) AS is_primary_key
        FROM information_schema.columns c
        WHERE c.table_schema = COALESCE($1::text, current_schema())
          AND c.table_name = $2
        ORDER BY c.ordinal_position
    """

    async def connect(self, descriptor: ConnectionDescriptor) -> ConnectionHandle:
        kwargs: dict[str, object] = {
            "dsn": descriptor.uri,
            "min_size": 1,
            "max_size": SERVER_POOL_SIZE,
        }
        try:
            context = build_ssl_context(descriptor.tls)
            if context is not None:
                kwargs["ssl"] = context
            pool = await asyncpg.create_pool(**kwargs)
        except Exception as exc:
            raise AdapterError(f"Failed to connect to '{descriptor.name}': {exc}") from exc
        return ConnectionHandle(descriptor=descriptor, pool=pool)

    async def list_tables(self, handle: ConnectionHandle) -> list[TableDescriptor]:
        pool = handle.pool
        try:
            rows = await pool.fetch(self._TABLES_QUERY)
        except Exception as exc:
            raise AdapterError(f"Failed to list tables: {exc}") from exc
        tables = []
        for row in rows:
            schema = str(row["schemaname"])
            name = str(row["tablename"])
            count_query = f"SELECT COUNT(*) AS count FROM {_quote(schema)}.{_quote(name)}"
            try:
                row_count: int | None = int(await pool.fetchval(count_query))
            except Exception:
                LOG.warning("Row count query failed", extra={"table": f"{schema}.{name}"}, exc_info=True)
                row_count = None
            tables.append(TableDescriptor(name=name, schema=schema, row_count=row_count))
        return tables

    async def list_columns(
        self,
        handle: ConnectionHandle,
        table: str,
        schema: str | None = None,
    ) -> list[ColumnDescriptor]:
        try:
            rows = await handle.pool.fetch(self._COLUMNS_QUERY, schema, table)
        except Exception as exc:
            raise AdapterError(f"Failed to list columns for '{table}': {exc}") from exc
        return [
            ColumnDescriptor(
                name=str(row["column_name"]),
                data_type=str(row["data_type"]),
                nullable=row["is_nullable"] == "YES",
                primary_key=bool(row["is_primary_key"]),
            )
            for row in rows
        ]

    async def execute(self, handle: ConnectionHandle, sql: str) -> QueryResult:
        started = time.perf_counter()
        try:
            async with handle.pool.acquire() as conn:
                try:
                    statement = await conn.prepare(sql)
                except asyncpg.exceptions.PostgresSyntaxError:
                    # Multi-statement text cannot be prepared; a genuine syntax
                    # error fails again here and is reported from this call.
                    status = await conn.execute(sql)
                    return _build_result((), (), started, affected_rows=_affected_from_status(status))
                attributes = statement.get_attributes()
                if not attributes:
                    status = await conn.execute(sql)
                    return _build_result((), (), started, affected_rows=_affected_from_status(status))
                records = await statement.fetch()
        except Exception as exc:
            raise AdapterError(str(exc)) from exc
        return _build_result([attr.name for attr in attributes], records, started)

    async def close(self, handle: ConnectionHandle) -> None:
        await handle.pool.close()


def _affected_from_status(status: str | None) -> int:
    """Pull the trailing row count out of a command tag such as ``INSERT 0 3``."""

    if not status:
        return 0
    tail = status.rsplit(None, 1)[-1]
    return int(tail) if tail.isdigit() else 0


# MySQL ---------------------------------------------------------------------------


_MYSQL_SSL_MODES = {
    "DISABLED": TlsMode.DISABLED,
    "REQUIRED": TlsMode.REQUIRE,
    "VERIFY_CA": TlsMode.VERIFY_CA,
    "VERIFY_IDENTITY": TlsMode.VERIFY_FULL,
}


def mysql_tls_from_query(query: str) -> TlsPolicy | None:
    """Read ``ssl-mode``/``ssl-ca``/``ssl-cert``/``ssl-key`` URI parameters.

    ``PREFERRED`` and an absent mode return ``None``; aiomysql has no
    opportunistic TLS, so those connect in plain text.
    """

    params = {key.lower(): values[-1] for key, values in parse_qs(query).items()}
    raw_mode = params.get("ssl-mode", "").upper()
    mode = _MYSQL_SSL_MODES.get(raw_mode)
    if mode is None:
        if raw_mode and raw_mode != "PREFERRED":
            LOG.warning("Ignoring unknown ssl-mode", extra={"ssl_mode": raw_mode})
        return None
    return TlsPolicy(
        mode=mode,
        cert_file=params.get("ssl-cert"),
        key_file=params.get("ssl-key"),
        ca_file=params.get("ssl-ca"),
    )


def mysql_connect_kwargs(uri: str) -> dict[str, object]:
    """Split a ``mysql://`` URI into aiomysql keyword arguments."""

    parts = urlsplit(uri)
    kwargs: dict[str, object] = {
        "host": parts.hostname or "localhost",
        "port": parts.port or 3306,
    }
    if parts.username:
        kwargs["user"] = unquote(parts.username)
    if parts.password:
        kwargs["password"] = unquote(parts.password)
    database = unquote(parts.path.lstrip("/"))
    if database:
        kwargs["db"] = database
    context = build_ssl_context(mysql_tls_from_query(parts.query))
    if context:
        kwargs["ssl"] = context
    return kwargs


def _describe_field(row: Sequence[object], index: int | None, default: str | None) -> str | None:
    """Read one DESCRIBE field as text, retrying as raw bytes before giving up."""

    if index is None or index >= len(row):
        return default
    value = row[index]
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    LOG.debug("Undecodable DESCRIBE field", extra={"value_type": type(value).__name__})
    return default


class MysqlAdapter:
    """Server engine adapter backed by an aiomysql pool."""

    kind = EngineKind.MYSQL

    async def connect(self, descriptor: ConnectionDescriptor) -> ConnectionHandle:
        try:
            kwargs = mysql_connect_kwargs(descriptor.uri)
            # A structured policy replaces whatever the URI asked for.
            if descriptor.tls is not None:
                kwargs.pop("ssl", None)
                context = build_ssl_context(descriptor.tls)
                if context:
                    kwargs["ssl"] = context
            pool = await aiomysql.create_pool(
                minsize=1,
                maxsize=SERVER_POOL_SIZE,
                autocommit=True,
                **kwargs,
            )
        except Exception as exc:
            raise AdapterError(f"Failed to connect to '{descriptor.name}': {exc}") from exc
        return ConnectionHandle(descriptor=descriptor, pool=pool)

    async def list_tables(self, handle: ConnectionHandle) -> list[TableDescriptor]:
        try:
            _, rows, _ = await self._run(handle.pool, "SHOW TABLES")
        except Exception as exc:
            raise AdapterError(f"Failed to list tables: {exc}") from exc
        tables = []
        for row in rows:
            name = _describe_field(row, 0, None)
            if name is None:
                continue
            try:
                _, count_rows, _ = await self._run(handle.pool, f"SELECT COUNT(*) AS count FROM {_quote(name, '`')}")
                row_count: int | None = int(count_rows[0][0])
            except Exception:
                LOG.warning("Row count query failed", extra={"table": name}, exc_info=True)
                row_count = None
            tables.append(TableDescriptor(name=name, row_count=row_count))
        return tables

    async def list_columns(
        self,
        handle: ConnectionHandle,
        table: str,
        schema: str | None = None,
    ) -> list[ColumnDescriptor]:
        target = _quote(table, "`")
        if schema:
            target = f"{_quote(schema, '`')}.{target}"
        try:
            description, rows, _ = await self._run(handle.pool, f"DESCRIBE {target}")
        except Exception as exc:
            raise AdapterError(f"Failed to list columns for '{table}': {exc}") from exc
        positions = {str(entry[0]): idx for idx, entry in enumerate(description or ())}
        columns = []
        for row in rows:
            name = _describe_field(row, positions.get("Field"), None)
            if name is None:
                LOG.warning("Skipping unreadable DESCRIBE row", extra={"table": table})
                continue
            data_type = _describe_field(row, positions.get("Type"), "unknown")
            null = _describe_field(row, positions.get("Null"), "YES")
            key = _describe_field(row, positions.get("Key"), "")
            columns.append(
                ColumnDescriptor(
                    name=name,
                    data_type=data_type or "unknown",
                    nullable=null == "YES",
                    primary_key=key == "PRI",
                )
            )
        return columns

    async def execute(self, handle: ConnectionHandle, sql: str) -> QueryResult:
        started = time.perf_counter()
        try:
            description, rows, rowcount = await self._run(handle.pool, sql)
        except Exception as exc:
            raise AdapterError(str(exc)) from exc
        if not description:
            return _build_result((), (), started, affected_rows=max(rowcount, 0))
        return _build_result([entry[0] for entry in description], rows, started)

    async def close(self, handle: ConnectionHandle) -> None:
        handle.pool.close()
        await handle.pool.wait_closed()

    @staticmethod
    async def _run(pool: Any, sql: str) -> tuple[Sequence[Sequence[object]] | None, Sequence[Sequence[object]], int]:
        async with pool.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute(sql)
                description = cursor.description
                rows = await cursor.fetchall() if description else ()
                return description, rows, cursor.rowcount


_ADAPTERS: dict[EngineKind, BackendAdapter] = {
    EngineKind.SQLITE: SqliteAdapter(),
    EngineKind.POSTGRES: PostgresAdapter(),
    EngineKind.MYSQL: MysqlAdapter(),
}


def adapter_for(kind: EngineKind) -> BackendAdapter:
    """Return the adapter registered for an engine kind."""

    return _ADAPTERS[kind]


async def connect(descriptor: ConnectionDescriptor) -> ConnectionHandle:
    """Open a pool for the descriptor using the matching adapter."""

    return await adapter_for(descriptor.kind).connect(descriptor)


__all__ = [
    "AdapterError",
    "BackendAdapter",
    "ConnectionHandle",
    "MysqlAdapter",
    "PostgresAdapter",
    "SqliteAdapter",
    "adapter_for",
    "build_ssl_context",
    "coerce_cell",
    "connect",
    "mysql_connect_kwargs",
    "mysql_tls_from_query",
    "sqlite_target",
]
