"""Widget library for the Textual UI."""

from __future__ import annotations

from .connection_form import ConnectionFormScreen
from .connection_sidebar import ConnectionSidebar
from .query_pad import QueryPad
from .status_bar import StatusBar

__all__ = ["ConnectionFormScreen", "ConnectionSidebar", "QueryPad", "StatusBar"]
