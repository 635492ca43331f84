"""Command palette providers for core app features."""

from __future__ import annotations

from textual.command import DiscoveryHit, Hit, Hits, Provider
from textual.types import IgnoreReturnCallbackType

from .session import SessionManager
from .statements import table_templates


class _SessionProvider(Provider):
    @property
    def _session_manager(self) -> SessionManager | None:
        manager = getattr(self.app, "session_manager", None)
        if isinstance(manager, SessionManager):
            return manager
        return None


class ConnectionSwitchProvider(_SessionProvider):
    """Expose saved connections to the command palette."""

    async def search(self, query: str) -> Hits:
        manager = self._session_manager
        if manager is None:
            return
        matcher = self.matcher(query)
        for index, descriptor in enumerate(manager.descriptors):
            match = matcher.match(descriptor.name)
            if match > 0:
                yield Hit(
                    score=match,
                    match_display=f"Connect to: {matcher.highlight(descriptor.name)}",
                    command=self._build_callback(index),
                    help=f"Open a {descriptor.kind.display_name} connection.",
                )

    async def discover(self) -> Hits:
        manager = self._session_manager
        if manager is None:
            return
        for index, descriptor in enumerate(manager.descriptors):
            yield DiscoveryHit(
                display=f"Connect to: {descriptor.name}",
                command=self._build_callback(index),
                help=f"Open a {descriptor.kind.display_name} connection.",
            )

    def _build_callback(self, index: int) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            connect = getattr(self.app, "connect_to", None)
            if connect is None:
                return
            connect(index)

        return _run


class TableRefreshProvider(_SessionProvider):
    """Expose a table refresh action for the active connection."""

    _LABEL = "Refresh table list"

    async def search(self, query: str) -> Hits:
        if self._session_manager is None:
            return
        matcher = self.matcher(query)
        score = matcher.match(self._LABEL)
        if score > 0:
            yield Hit(
                score=score,
                match_display=matcher.highlight(self._LABEL),
                command=self._build_callback(),
                help="Trigger Ctrl+R equivalent refresh.",
            )

    async def discover(self) -> Hits:
        if self._session_manager is None:
            return
        yield DiscoveryHit(
            display=self._LABEL,
            command=self._build_callback(),
            help="Trigger Ctrl+R equivalent refresh.",
        )

    def _build_callback(self) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            refresh = getattr(self.app, "action_refresh", None)
            if refresh is None:
                return
            refresh()

        return _run


class StatementTemplateProvider(_SessionProvider):
    """Offer starter statements for the table selected in the sidebar."""

    async def search(self, query: str) -> Hits:
        matcher = self.matcher(query)
        for label, sql in self._templates():
            score = matcher.match(f"Template: {label}")
            if score > 0:
                yield Hit(
                    score=score,
                    match_display=matcher.highlight(f"Template: {label}"),
                    command=self._build_callback(sql),
                    help=sql.splitlines()[0],
                )

    async def discover(self) -> Hits:
        for label, sql in self._templates():
            yield DiscoveryHit(
                display=f"Template: {label}",
                command=self._build_callback(sql),
                help=sql.splitlines()[0],
            )

    def _templates(self) -> list[tuple[str, str]]:
        manager = self._session_manager
        if manager is None or manager.state.selected_table is None:
            return []
        state = manager.state
        templates = table_templates(state.selected_table.qualified_name, state.columns, limit=manager.page_size)
        return list(templates.items())

    def _build_callback(self, sql: str) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            load = getattr(self.app, "load_query", None)
            if load is None:
                return
            load(sql)

        return _run


__all__ = ["ConnectionSwitchProvider", "StatementTemplateProvider", "TableRefreshProvider"]
