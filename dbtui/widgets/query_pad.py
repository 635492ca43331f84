"""Query pad widget: SQL input, paged results table and execution status."""

from __future__ import annotations

from typing import Callable

from textual import events
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.message import Message
from textual.widgets import Button, DataTable, Input, Static

from dbtui.query import QueryExecutionError
from dbtui.session import SessionManager, SessionState


class QueryPad(Container):
    """Editor surface that runs statements and renders one page of results."""

    DEFAULT_CSS = """
    QueryPad {
        layout: vertical;
        border: round $primary 40%;
        padding: 1 2;
        height: 1fr;
        background: $surface;
    }

    QueryPad .panel-title {
        text-style: bold;
    }

    QueryPad Input {
        border: heavy $primary;
    }

    QueryPad:focus-within {
        border: round $primary;
        background: $surface-lighten-1;
    }

    QueryPad .query-actions {
        margin-top: 1;
        height: auto;
        align-horizontal: left;
    }

    QueryPad .query-actions > * {
        margin-right: 1;
    }

    QueryPad #query-results {
        height: 1fr;
        margin-top: 1;
        border-top: solid $surface-darken-2;
    }

    #page-indicator {
        color: $text-muted;
    }
    """

    BINDINGS = Container.BINDINGS + [
        Binding("ctrl+enter", "run_query", "Run query", show=False, priority=True),
        Binding("pagedown", "next_page", "Next page", show=False),
        Binding("pageup", "previous_page", "Previous page", show=False),
    ]

    def __init__(self, session_manager: SessionManager) -> None:
        super().__init__(id="query-pad")
        self._session_manager = session_manager
        self._input: Input | None = None
        self._status_panel: Static | None = None
        self._page_indicator: Static | None = None
        self._result_table: DataTable | None = None
        self._rendered: tuple[object, int] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def compose(self) -> ComposeResult:
        yield Static("Query", classes="panel-title")
        yield _QueryInput(
            placeholder="Type SQL, e.g. SELECT * FROM users WHERE id = 1;",
            id="query-input",
            on_query=self._request_query_run,
        )
        yield Horizontal(
            Button("Run query", id="run-query", variant="primary"),
            Button("◀", id="previous-page"),
            Button("▶", id="next-page"),
            Static("", id="page-indicator"),
            Static("", id="query-status"),
            classes="query-actions",
        )
        yield DataTable(id="query-results", zebra_stripes=True)

    async def on_mount(self) -> None:
        self._input = self.query_one("#query-input", _QueryInput)
        self._status_panel = self.query_one("#query-status", Static)
        self._page_indicator = self.query_one("#page-indicator", Static)
        self._result_table = self.query_one("#query-results", DataTable)
        self._result_table.cursor_type = "row"
        self._unsubscribe = self._session_manager.subscribe(self._handle_session_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def set_query(self, sql: str) -> None:
        """Replace the input buffer (used by the table browser)."""

        if self._input:
            # The input is single-line.
            flattened = " ".join(line.strip() for line in sql.splitlines() if line.strip())
            self._input.value = flattened
            self._input.cursor_position = len(flattened)

    def focus_input(self) -> None:
        if self._input:
            self._input.focus()

    async def action_run_query(self) -> None:
        await self._execute_current_query()

    def action_next_page(self) -> None:
        self._session_manager.next_page()

    def action_previous_page(self) -> None:
        self._session_manager.previous_page()

    async def on_query_run_requested(self, event: "QueryRunRequested") -> None:
        await self._execute_current_query()
        event.stop()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "run-query":
            await self._execute_current_query()
        elif event.button.id == "next-page":
            self._session_manager.next_page()
        elif event.button.id == "previous-page":
            self._session_manager.previous_page()

    def _request_query_run(self) -> None:
        self.post_message(QueryRunRequested())

    async def _execute_current_query(self) -> None:
        if not self._input:
            return
        sql = self._input.value.strip()
        if not sql:
            self._set_status("Enter SQL to run.", severity="warning")
            return
        self._set_status("Executing…", severity="information")
        try:
            result = await self._session_manager.run_query(sql)
        except QueryExecutionError as exc:
            self._set_status(f"Error: {exc}", severity="error")
            return
        if result.columns:
            badge = f"{result.row_count} row(s) · {result.elapsed_ms} ms"
        else:
            badge = f"{result.affected_rows or 0} row(s) affected · {result.elapsed_ms} ms"
        self._set_status(badge, severity="success")

    def _handle_session_update(self, state: SessionState) -> None:
        key = (state.result, state.page)
        if self._rendered is not None and self._rendered[0] is key[0] and self._rendered[1] == key[1]:
            return
        self._rendered = key
        self._render_page(state)

    def _render_page(self, state: SessionState) -> None:
        if self._page_indicator:
            if state.total_pages:
                self._page_indicator.update(f"Page {state.page + 1}/{state.total_pages}")
            else:
                self._page_indicator.update("")
        if not self._result_table:
            return
        self._result_table.clear(columns=True)
        result = state.result
        if result is None or not result.columns:
            return
        self._result_table.add_columns(*result.columns)
        for row in self._session_manager.page_slice(state.page):
            self._result_table.add_row(*row)

    def _set_status(self, message: str, *, severity: str) -> None:
        if not self._status_panel:
            return
        prefix = {
            "information": "ℹ",
            "warning": "⚠",
            "error": "✖",
            "success": "✔",
        }.get(severity, "•")
        self._status_panel.update(f"{prefix} {message}")


class QueryRunRequested(Message):
    """Message fired when the input requests a query run."""

    pass


class _QueryInput(Input):
    """Input wrapper that detects Ctrl+Enter/newline chords."""

    _TRIGGER_KEYS = {"ctrl+enter", "ctrl+j", "newline", "enter"}

    def __init__(
        self,
        *args: object,
        on_query: Callable[[], None] | None = None,
        **kwargs: object,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._on_query = on_query

    async def _on_key(self, event: events.Key) -> None:
        key = event.key or ""
        if key in self._TRIGGER_KEYS and self._on_query:
            self._on_query()
            event.stop()
            return
        await super()._on_key(event)


__all__ = ["QueryPad", "QueryRunRequested"]
