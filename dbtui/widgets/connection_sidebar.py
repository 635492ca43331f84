"""Sidebar widget listing saved connections and the active schema."""

from __future__ import annotations

from typing import Callable

from textual import on
from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import Label, ListItem, ListView, Static

from dbtui.connections import LifecycleState
from dbtui.models import ConnectionDescriptor, TableDescriptor
from dbtui.session import SessionManager, SessionState


class ConnectionSidebar(Container):
    """Displays saved connections, tables of the active one, and table columns."""

    DEFAULT_CSS = """
    ConnectionSidebar {
        width: 32;
        min-width: 22;
        border-right: solid $surface-darken-1;
        padding: 1;
        height: 1fr;
        background: $surface-darken-2;
    }

    ConnectionSidebar .sidebar-heading {
        text-style: bold;
        margin-bottom: 1;
    }

    #connection-list {
        height: 8;
        border: round $primary 30%;
        margin-bottom: 1;
    }

    #connection-list .active {
        text-style: bold;
    }

    #table-list {
        height: 1fr;
        border: round $primary 30%;
    }

    #column-summary {
        padding-top: 1;
        border-top: solid $surface-darken-1;
        color: $text-muted;
        min-height: 4;
    }
    """

    def __init__(self, session_manager: SessionManager, *, width: int | None = None) -> None:
        super().__init__(id="connection-sidebar")
        self._session_manager = session_manager
        self._width = width
        self._connection_list: ListView | None = None
        self._table_list: ListView | None = None
        self._column_summary: Static | None = None
        self._rendered_tables: tuple[TableDescriptor, ...] | None = None
        self._rendered_descriptors: tuple[ConnectionDescriptor, ...] = ()
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def highlighted_connection(self) -> int | None:
        """Position of the highlighted entry in the connection list."""

        if not self._connection_list:
            return None
        return self._connection_list.index

    def compose(self) -> ComposeResult:
        yield Static("Connections", classes="sidebar-heading")
        self._rendered_descriptors = self._session_manager.descriptors
        self._connection_list = ListView(*_connection_items(self._rendered_descriptors), id="connection-list")
        yield self._connection_list
        yield Static("Tables", classes="sidebar-heading")
        self._table_list = ListView(id="table-list")
        yield self._table_list
        self._column_summary = Static("Select a table to see its columns.", id="column-summary")
        yield self._column_summary

    async def on_mount(self) -> None:
        if self._width:
            self.styles.width = self._width
        self._unsubscribe = self._session_manager.subscribe(self._handle_session_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_session_update(self, state: SessionState) -> None:
        self._render_connections(state)
        self._render_tables(state)
        self._render_columns(state)

    def _render_connections(self, state: SessionState) -> None:
        if not self._connection_list:
            return
        active = state.descriptor if state.lifecycle is LifecycleState.CONNECTED else None
        descriptors = self._session_manager.descriptors
        if descriptors != self._rendered_descriptors:
            self._rendered_descriptors = descriptors
            self._connection_list.clear()
            self._connection_list.extend(_connection_items(descriptors))
        for item in self._connection_list.query(_ConnectionListItem):
            if item.position >= len(descriptors):
                continue
            descriptor = descriptors[item.position]
            item.set_class(descriptor == active, "active")

    def _render_tables(self, state: SessionState) -> None:
        if not self._table_list or state.tables == self._rendered_tables:
            return
        self._rendered_tables = state.tables
        self._table_list.clear()
        for table in state.tables:
            count = "?" if table.row_count is None else str(table.row_count)
            self._table_list.append(_TableListItem(table, f"{table.qualified_name} ({count})"))

    def _render_columns(self, state: SessionState) -> None:
        if not self._column_summary:
            return
        if state.selected_table is None:
            self._column_summary.update("Select a table to see its columns.")
            return
        lines = [state.selected_table.qualified_name]
        for column in state.columns:
            flags = []
            if column.primary_key:
                flags.append("PK")
            if not column.nullable:
                flags.append("NOT NULL")
            suffix = f" [{', '.join(flags)}]" if flags else ""
            lines.append(f"  {column.name}: {column.data_type}{suffix}")
        self._column_summary.update("\n".join(lines))

    @on(ListView.Selected, "#connection-list")
    def _handle_connection_selected(self, event: ListView.Selected) -> None:
        item = event.item
        if isinstance(item, _ConnectionListItem):
            connect = getattr(self.app, "connect_to", None)
            if connect is not None:
                connect(item.position)
            event.stop()

    @on(ListView.Selected, "#table-list")
    def _handle_table_selected(self, event: ListView.Selected) -> None:
        item = event.item
        if isinstance(item, _TableListItem):
            browse = getattr(self.app, "browse_table", None)
            if browse is not None:
                browse(item.table)
            event.stop()


class _ConnectionListItem(ListItem):
    """List item storing the position of its descriptor."""

    def __init__(self, index: int, label: str) -> None:
        super().__init__(Label(label))
        self.position = index


def _connection_items(descriptors: tuple[ConnectionDescriptor, ...]) -> list[_ConnectionListItem]:
    return [
        _ConnectionListItem(index, f"{descriptor.name} ({descriptor.kind.display_name})")
        for index, descriptor in enumerate(descriptors)
    ]


class _TableListItem(ListItem):
    def __init__(self, table: TableDescriptor, label: str) -> None:
        super().__init__(Label(label))
        self.table = table


__all__ = ["ConnectionSidebar"]
