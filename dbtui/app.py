"""Textual application entry point for dbtui."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.logging import TextualHandler
from textual.widgets import Footer, Header

from . import demo
from .adapters import AdapterError
from .config import AppConfig, load_config, save_config
from .connections import POLL_INTERVAL, LifecycleState
from .models import ConnectionDescriptor, TableDescriptor
from .providers import ConnectionSwitchProvider, StatementTemplateProvider, TableRefreshProvider
from .session import SessionManager
from .statements import select_star
from .widgets import ConnectionFormScreen, ConnectionSidebar, QueryPad, StatusBar

LOG = logging.getLogger(__name__)

SIDEBAR_STEP = 4
MIN_SIDEBAR_WIDTH = 22


def _load_app_config() -> AppConfig:
    """Load configuration with a small wrapper for future overrides."""

    return load_config()


class DbtuiApp(App[None]):
    """Terminal client for SQLite, PostgreSQL and MySQL databases."""

    COMMANDS = App.COMMANDS | {ConnectionSwitchProvider, StatementTemplateProvider, TableRefreshProvider}
    CSS = """
    Screen {
        layout: vertical;
    }
    #content {
        layout: horizontal;
        height: 1fr;
    }
    #main-column {
        layout: vertical;
        padding: 1 2;
        height: 1fr;
    }
    """

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        ("ctrl+r", "refresh", "Refresh Tables"),
        ("escape", "cancel_connection", "Cancel Connect"),
        ("ctrl+n", "new_connection", "New Connection"),
        ("e", "edit_connection", "Edit Connection"),
        ("ctrl+d", "disconnect", "Disconnect"),
        ("delete", "delete_connection", "Delete Connection"),
        ("ctrl+p", "command_palette", "Command Palette"),
        ("ctrl+left", "shrink_sidebar", "Narrower Sidebar"),
        ("ctrl+right", "grow_sidebar", "Wider Sidebar"),
    ]

    def __init__(self, config: AppConfig | None = None) -> None:
        super().__init__()
        self._config = config or _load_app_config()
        self._session_manager = SessionManager(
            self._config.descriptors(),
            page_size=self._config.page_size,
            connect_timeout=self._config.connect_timeout,
        )
        self._sidebar: ConnectionSidebar | None = None
        self._query_pad: QueryPad | None = None
        self._status_bar: StatusBar | None = None
        self._pending_notifications: list[tuple[str, str]] = []

    def compose(self) -> ComposeResult:
        """Compose the root layout."""

        yield Header(show_clock=True)
        self._sidebar = ConnectionSidebar(self._session_manager, width=self._config.layout.sidebar_width)
        self._query_pad = QueryPad(self._session_manager)
        yield Horizontal(self._sidebar, Container(self._query_pad, id="main-column"), id="content")
        self._status_bar = StatusBar(self._session_manager)
        yield self._status_bar
        yield Footer()

    async def on_mount(self) -> None:
        self.theme = "textual-light" if self._config.theme == "light" else "textual-dark"
        self.set_interval(POLL_INTERVAL, self._poll_connection)
        self._flush_pending_notifications()

    async def on_unmount(self) -> None:
        await self._session_manager.disconnect()

    @property
    def session_manager(self) -> SessionManager:
        """Expose the session manager for tests and command providers."""

        return self._session_manager

    @property
    def config(self) -> AppConfig:
        return self._config

    def connect_to(self, index: int) -> None:
        """Start a background connection to the descriptor at ``index``."""

        try:
            self._session_manager.start_connection(index)
        except ValueError as exc:
            self._safe_notify(str(exc), severity="error")

    def browse_table(self, table: TableDescriptor) -> None:
        """Describe ``table`` and load a ``SELECT *`` for it into the query pad."""

        self.run_worker(self._browse_table(table), exclusive=True, group="browse")

    def load_query(self, sql: str) -> None:
        """Place ``sql`` in the query pad without running it."""

        if self._query_pad:
            self._query_pad.set_query(sql)
            self._query_pad.focus_input()

    def add_connection(self, descriptor: ConnectionDescriptor) -> None:
        """Append a saved connection and persist the list."""

        self._store_descriptors((*self._session_manager.descriptors, descriptor))
        self._safe_notify(f"Added connection: {descriptor.name}")

    def update_connection(self, index: int, descriptor: ConnectionDescriptor) -> None:
        """Replace the saved connection at ``index`` and persist the list."""

        descriptors = list(self._session_manager.descriptors)
        if index < 0 or index >= len(descriptors):
            self._safe_notify("Invalid connection index", severity="error")
            return
        descriptors[index] = descriptor
        self._store_descriptors(descriptors)
        self._safe_notify(f"Updated connection: {descriptor.name}")

    def remove_connection(self, index: int) -> None:
        descriptors = list(self._session_manager.descriptors)
        if index < 0 or index >= len(descriptors):
            self._safe_notify("Invalid connection index", severity="error")
            return
        removed = descriptors.pop(index)
        self._store_descriptors(descriptors)
        self._safe_notify(f"Removed connection: {removed.name}")

    def remember_sidebar_width(self, width: int) -> None:
        """Persist the sidebar width when it changes."""

        if self._config.layout.sidebar_width == width:
            return
        self._config = self._config.with_layout(sidebar_width=width)
        save_config(self._config)

    def action_refresh(self) -> None:
        if self._session_manager.handle is None:
            self._safe_notify("Not connected.", severity="warning")
            return
        self.run_worker(self._load_tables(), exclusive=True, group="tables")

    def action_cancel_connection(self) -> None:
        self._session_manager.cancel_connection()

    async def action_disconnect(self) -> None:
        await self._session_manager.disconnect()

    def action_new_connection(self) -> None:
        def _on_result(descriptor: ConnectionDescriptor | None) -> None:
            if descriptor is not None:
                self.add_connection(descriptor)

        self.push_screen(ConnectionFormScreen(), _on_result)

    def action_edit_connection(self) -> None:
        if self._sidebar is None:
            return
        position = self._sidebar.highlighted_connection
        if position is None or position >= len(self._session_manager.descriptors):
            return

        def _on_result(descriptor: ConnectionDescriptor | None) -> None:
            if descriptor is not None:
                self.update_connection(position, descriptor)

        self.push_screen(ConnectionFormScreen(self._session_manager.descriptors[position]), _on_result)

    def action_delete_connection(self) -> None:
        if self._sidebar is None:
            return
        position = self._sidebar.highlighted_connection
        if position is not None:
            self.remove_connection(position)

    def action_shrink_sidebar(self) -> None:
        self._resize_sidebar(-SIDEBAR_STEP)

    def action_grow_sidebar(self) -> None:
        self._resize_sidebar(SIDEBAR_STEP)

    def _resize_sidebar(self, delta: int) -> None:
        if self._sidebar is None:
            return
        current = self._config.layout.sidebar_width or self._sidebar.size.width or MIN_SIDEBAR_WIDTH
        width = max(MIN_SIDEBAR_WIDTH, current + delta)
        self._sidebar.styles.width = width
        self.remember_sidebar_width(width)

    def _poll_connection(self) -> None:
        before = self._session_manager.lifecycle_state
        after = self._session_manager.poll_connection()
        if self._status_bar:
            self._status_bar.tick()
        if before is not LifecycleState.CONNECTING or after is LifecycleState.CONNECTING:
            return
        state = self._session_manager.state
        if after is LifecycleState.CONNECTED:
            name = state.descriptor.name if state.descriptor else "database"
            self._safe_notify(f"Connected to {name}", severity="information")
            self.run_worker(self._load_tables(), exclusive=True, group="tables")
        elif after is LifecycleState.FAILED:
            self._safe_notify(state.message or "Connection failed", severity="error")

    async def _load_tables(self) -> None:
        try:
            await self._session_manager.refresh_tables()
        except AdapterError as exc:
            self._safe_notify(f"Failed to load tables: {exc}", severity="error")

    async def _browse_table(self, table: TableDescriptor) -> None:
        try:
            await self._session_manager.list_columns(table)
        except AdapterError as exc:
            self._safe_notify(f"Failed to load columns: {exc}", severity="error")
            return
        self.load_query(select_star(table.qualified_name, self._session_manager.page_size))

    def _store_descriptors(self, descriptors: Sequence[ConnectionDescriptor]) -> None:
        self._session_manager.set_descriptors(descriptors)
        self._config = self._config.with_connections(descriptors)
        save_config(self._config)

    def _safe_notify(self, message: str, *, severity: str = "information") -> None:
        if self.is_running:
            try:
                self.notify(message, severity=severity)
            except Exception:
                LOG.exception("Failed to display notification", extra={"notification": message})
        else:
            self._pending_notifications.append((message, severity))

    def _flush_pending_notifications(self) -> None:
        if not self._pending_notifications:
            return
        pending = list(self._pending_notifications)
        self._pending_notifications.clear()
        for message, severity in pending:
            self.notify(message, severity=severity)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="dbtui", description="Terminal database client.")
    parser.add_argument(
        "--create-demo",
        nargs="?",
        const=demo.DEFAULT_DEMO_PATH,
        type=Path,
        metavar="PATH",
        help="Create a sample SQLite database and register it as a connection",
    )
    return parser.parse_args(list(argv))


def configure_logging(level: str) -> None:
    """Route log records to the Textual devtools console."""

    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), handlers=[TextualHandler()], force=True)


def main(argv: Sequence[str] | None = None) -> None:
    """Invoke the Textual application."""

    args = parse_args(sys.argv[1:] if argv is None else argv)
    config = _load_app_config()
    configure_logging(config.log_level)
    if args.create_demo is not None:
        demo.main([str(args.create_demo)])
        return
    DbtuiApp(config).run()


if __name__ == "__main__":
    main()
