"""Session facade the UI drives: connect, browse schema, query and paginate."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Sequence

from .adapters import AdapterError, ConnectionHandle
from .connections import CONNECT_TIMEOUT, ConnectionLifecycleManager, LifecycleState
from .models import ColumnDescriptor, ConnectionDescriptor, QueryResult, TableDescriptor
from .pagination import DEFAULT_PAGE_SIZE, page_slice, total_pages
from .query import QueryExecutionError, QueryExecutor, QueryHistory

LOG = logging.getLogger(__name__)

SessionListener = Callable[["SessionState"], None]


@dataclass(frozen=True, slots=True)
class SessionState:
    """Current session snapshot published to listeners."""

    lifecycle: LifecycleState
    descriptor: ConnectionDescriptor | None
    message: str | None
    last_error: str | None
    tables: tuple[TableDescriptor, ...] = ()
    selected_table: TableDescriptor | None = None
    columns: tuple[ColumnDescriptor, ...] = ()
    result: QueryResult | None = None
    page: int = 0
    total_pages: int = 0
    updated_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    @property
    def connected(self) -> bool:
        return self.lifecycle is LifecycleState.CONNECTED


class SessionManager:
    """Lightweight session orchestrator for the Textual app.

    Descriptors are addressed by their position in the list handed in by the
    caller; persisting that list is the caller's job.
    """

    def __init__(
        self,
        descriptors: Sequence[ConnectionDescriptor],
        *,
        lifecycle: ConnectionLifecycleManager | None = None,
        executor: QueryExecutor | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        connect_timeout: float = CONNECT_TIMEOUT,
    ) -> None:
        self._descriptors = tuple(descriptors)
        self._lifecycle = lifecycle or ConnectionLifecycleManager(timeout=connect_timeout)
        self._executor = executor or QueryExecutor(page_size=page_size)
        self._page_size = self._executor.page_size
        self._history = QueryHistory()
        self._listeners: set[SessionListener] = set()
        self._tables: tuple[TableDescriptor, ...] = ()
        self._selected_table: TableDescriptor | None = None
        self._columns: tuple[ColumnDescriptor, ...] = ()
        self._result: QueryResult | None = None
        self._page = 0
        self._last_error: str | None = None
        self._message: str | None = None
        self._state = self._snapshot()

    @property
    def descriptors(self) -> tuple[ConnectionDescriptor, ...]:
        """Connections available in the current config."""

        return self._descriptors

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def handle(self) -> ConnectionHandle | None:
        """Active connection handle, if connected."""

        return self._lifecycle.handle

    @property
    def lifecycle_state(self) -> LifecycleState:
        return self._lifecycle.state

    @property
    def history(self) -> tuple[str, ...]:
        return self._history.entries

    @property
    def page_size(self) -> int:
        return self._page_size

    def set_descriptors(self, descriptors: Sequence[ConnectionDescriptor]) -> None:
        """Replace the connection list after the caller edits it."""

        self._descriptors = tuple(descriptors)
        self._notify()

    def start_connection(self, index: int) -> None:
        """Begin connecting to the descriptor at ``index`` in the background."""

        if index < 0 or index >= len(self._descriptors):
            raise ValueError("Invalid connection index")
        self._lifecycle.start(self._descriptors[index])
        self._message = self._lifecycle.message
        self._last_error = None
        self._notify()

    def poll_connection(self) -> LifecycleState:
        """Non-blocking check on the background attempt; call once per UI tick."""

        before = self._lifecycle.state
        after = self._lifecycle.poll()
        if before is LifecycleState.CONNECTING and after is not LifecycleState.CONNECTING:
            self._message = self._lifecycle.message
            if after is LifecycleState.CONNECTED:
                self._reset_browsing()
                self._last_error = None
            else:
                self._last_error = self._lifecycle.message
            self._notify()
        return after

    def cancel_connection(self) -> None:
        if not self._lifecycle.is_connecting:
            return
        self._lifecycle.cancel()
        self._message = self._lifecycle.message
        self._notify()

    async def disconnect(self) -> None:
        await self._lifecycle.disconnect()
        self._reset_browsing()
        self._message = self._lifecycle.message
        self._notify()

    async def refresh_tables(self) -> tuple[TableDescriptor, ...]:
        """Reload the table list for the active connection."""

        handle = self._require_handle()
        try:
            tables = await handle.list_tables()
        except AdapterError as exc:
            self._record_error(f"Failed to load tables: {exc}")
            raise
        self._tables = tuple(tables)
        if self._selected_table not in self._tables:
            self._selected_table = None
            self._columns = ()
        self._notify()
        return self._tables

    async def list_tables(self) -> tuple[TableDescriptor, ...]:
        return await self.refresh_tables()

    async def list_columns(self, table: TableDescriptor | str) -> tuple[ColumnDescriptor, ...]:
        """Describe a table and remember it as the selected one."""

        handle = self._require_handle()
        if isinstance(table, str):
            table = next((entry for entry in self._tables if entry.name == table), TableDescriptor(name=table))
        try:
            columns = await handle.list_columns(table.name, table.schema)
        except AdapterError as exc:
            self._record_error(f"Failed to load table columns: {exc}")
            raise
        self._selected_table = table
        self._columns = tuple(columns)
        self._notify()
        return self._columns

    async def run_query(self, sql: str) -> QueryResult:
        """Execute SQL on the active connection and reset to the first page."""

        handle = self._lifecycle.handle
        if handle is None:
            raise QueryExecutionError("No database connection")
        self._message = "Executing query..."
        try:
            result = await self._executor.run(handle, sql)
        except QueryExecutionError as exc:
            self._record_error(f"Query failed: {exc}")
            raise
        self._history.record(sql.strip())
        self._result = result
        self._page = 0
        self._last_error = None
        self._message = "Query executed successfully"
        self._notify()
        return result

    def page_slice(self, page: int | None = None) -> tuple[tuple[str, ...], ...]:
        if self._result is None:
            return ()
        return page_slice(self._result, self._page if page is None else page, self._page_size)

    def total_pages(self) -> int:
        if self._result is None:
            return 0
        return total_pages(self._result, self._page_size)

    def next_page(self) -> int:
        if self._page < self.total_pages() - 1:
            self._page += 1
            self._notify()
        return self._page

    def previous_page(self) -> int:
        if self._page > 0:
            self._page -= 1
            self._notify()
        return self._page

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Subscribe to session updates; returns an unsubscribe handle."""

        self._listeners.add(listener)
        listener(self._state)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    def _require_handle(self) -> ConnectionHandle:
        handle = self._lifecycle.handle
        if handle is None:
            raise AdapterError("No database connection")
        return handle

    def _reset_browsing(self) -> None:
        self._tables = ()
        self._selected_table = None
        self._columns = ()
        self._result = None
        self._page = 0

    def _record_error(self, message: str) -> None:
        LOG.warning("Session operation failed", extra={"error": message})
        self._last_error = message
        self._message = None
        self._notify()

    def _snapshot(self) -> SessionState:
        return SessionState(
            lifecycle=self._lifecycle.state,
            descriptor=self._lifecycle.descriptor,
            message=self._message,
            last_error=self._last_error,
            tables=self._tables,
            selected_table=self._selected_table,
            columns=self._columns,
            result=self._result,
            page=self._page,
            total_pages=self.total_pages(),
        )

    def _notify(self) -> None:
        self._state = self._snapshot()
        for listener in tuple(self._listeners):
            listener(self._state)


__all__ = ["SessionListener", "SessionManager", "SessionState"]
