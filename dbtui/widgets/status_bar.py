"""Status bar widget that mirrors session information."""

from __future__ import annotations

from typing import Callable

from textual.widgets import Static

from dbtui.connections import LifecycleState
from dbtui.session import SessionManager, SessionState

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"


class StatusBar(Static):
    """Compact status strip rendered above Textual's footer."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }
    """

    def __init__(self, session_manager: SessionManager) -> None:
        super().__init__("", id="status-bar")
        self._session_manager = session_manager
        self._unsubscribe: Callable[[], None] | None = None
        self._frame = 0
        self._last_state: SessionState | None = None

    async def on_mount(self) -> None:
        self._unsubscribe = self._session_manager.subscribe(self._handle_session_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def tick(self) -> None:
        """Advance the connecting spinner; called from the app's poll interval."""

        self._frame = (self._frame + 1) % len(SPINNER_FRAMES)
        if self._last_state and self._last_state.lifecycle is LifecycleState.CONNECTING:
            self._render_state(self._last_state)

    def _handle_session_update(self, state: SessionState) -> None:
        self._last_state = state
        self._render_state(state)

    def _render_state(self, state: SessionState) -> None:
        lifecycle = state.lifecycle.value.capitalize()
        if state.lifecycle is LifecycleState.CONNECTING:
            lifecycle = f"{SPINNER_FRAMES[self._frame]} {lifecycle} (Esc to cancel)"
        parts = [f"Status: {lifecycle}"]
        if state.descriptor:
            parts.append(f"Connection: {state.descriptor.name} [{state.descriptor.kind.display_name}]")
        if state.connected:
            parts.append(f"Tables: {len(state.tables)}")
        if state.result is not None:
            total = state.result.total_count if state.result.total_count is not None else state.result.row_count
            parts.append(f"Rows: {total}")
        if state.last_error:
            parts.append(f"Error: {state.last_error.splitlines()[0][:80]}")
        elif state.message:
            parts.append(state.message)
        self.update(" | ".join(parts))


__all__ = ["StatusBar"]
