"""Modal form for adding or editing a saved connection."""

from __future__ import annotations

from textual import on
from textual.app import ComposeResult
from textual.containers import Horizontal, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Select, Static

from dbtui.config import DEFAULT_PORTS, build_connection_uri, split_connection_uri
from dbtui.models import ConnectionDescriptor, EngineKind, TlsMode, TlsPolicy


class ConnectionFormScreen(ModalScreen[ConnectionDescriptor | None]):
    """Collects connection fields and dismisses with a descriptor (or ``None``).

    Passing ``descriptor`` pre-fills the fields for editing. Query parameters
    on the saved URI are kept as-is since the form has no field for them.
    """

    DEFAULT_CSS = """
    ConnectionFormScreen {
        align: center middle;
    }

    #connection-form {
        width: 64;
        height: auto;
        max-height: 90%;
        padding: 1 2;
        border: round $primary;
        background: $surface;
    }

    #connection-form Label {
        margin-top: 1;
    }

    #form-error {
        color: $error;
        margin-top: 1;
    }

    #form-actions {
        margin-top: 1;
        height: auto;
    }
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, descriptor: ConnectionDescriptor | None = None) -> None:
        super().__init__()
        self._descriptor = descriptor
        self._fields: dict[str, object] = {"kind": EngineKind.POSTGRES, "host": "localhost"}
        if descriptor is not None:
            self._fields = split_connection_uri(descriptor.uri)

    def compose(self) -> ComposeResult:
        fields = self._fields
        kind = fields["kind"]
        port = fields.get("port")
        tls = self._descriptor.tls if self._descriptor else None
        title = "Edit connection" if self._descriptor else "New connection"
        with VerticalScroll(id="connection-form"):
            yield Static(title, classes="panel-title")
            yield Label("Name")
            yield Input(value=self._descriptor.name if self._descriptor else "", id="form-name")
            yield Label("Engine")
            yield Select(
                [(engine.display_name, engine) for engine in EngineKind],
                value=kind,
                allow_blank=False,
                id="form-engine",
            )
            yield Label("Host (file path for SQLite)")
            yield Input(value=str(fields.get("host", "")), id="form-host")
            yield Label("Port")
            yield Input(
                value=str(port) if port else "",
                placeholder=str(DEFAULT_PORTS.get(kind, "")),
                id="form-port",
            )
            yield Label("User")
            yield Input(value=str(fields.get("user", "")), id="form-user")
            yield Label("Password")
            yield Input(value=str(fields.get("password", "")), password=True, id="form-password")
            yield Label("Database")
            yield Input(value=str(fields.get("database", "")), id="form-database")
            yield Label("TLS")
            yield Select(
                [(mode.value, mode) for mode in TlsMode],
                value=tls.mode if tls else TlsMode.DISABLED,
                allow_blank=False,
                id="form-tls",
            )
            yield Label("CA certificate file")
            yield Input(value=(tls.ca_file if tls else None) or "", id="form-ca-file")
            yield Label("Client certificate file")
            yield Input(value=(tls.cert_file if tls else None) or "", id="form-cert-file")
            yield Label("Client key file")
            yield Input(value=(tls.key_file if tls else None) or "", id="form-key-file")
            yield Static("", id="form-error")
            with Horizontal(id="form-actions"):
                yield Button("Save", id="form-save", variant="primary")
                yield Button("Cancel", id="form-cancel")

    @on(Select.Changed, "#form-engine")
    def _engine_changed(self, event: Select.Changed) -> None:
        kind = event.value
        port_hint = str(DEFAULT_PORTS[kind]) if kind in DEFAULT_PORTS else ""
        self.query_one("#form-port", Input).placeholder = port_hint

    @on(Button.Pressed, "#form-save")
    def _save(self) -> None:
        try:
            descriptor = self.build_descriptor()
        except ValueError as exc:
            self.query_one("#form-error", Static).update(str(exc))
            return
        self.dismiss(descriptor)

    @on(Button.Pressed, "#form-cancel")
    def action_cancel(self) -> None:
        self.dismiss(None)

    def build_descriptor(self) -> ConnectionDescriptor:
        """Assemble a descriptor from the current field values."""

        name = self._value("#form-name")
        host = self._value("#form-host")
        if not name:
            raise ValueError("Connection name is required.")
        if not host:
            raise ValueError("Host is required.")
        port_text = self._value("#form-port")
        if port_text and not port_text.isdigit():
            raise ValueError("Port must be a number.")
        kind = self.query_one("#form-engine", Select).value
        query = str(self._fields.get("query", "")) if kind is self._fields["kind"] else ""
        uri = build_connection_uri(
            kind,
            host=host,
            port=int(port_text) if port_text else None,
            user=self._value("#form-user"),
            password=self.query_one("#form-password", Input).value,
            database=self._value("#form-database"),
            query=query,
        )
        mode = self.query_one("#form-tls", Select).value
        tls = None
        if mode is not TlsMode.DISABLED and kind is not EngineKind.SQLITE:
            cert_file = self._value("#form-cert-file") or None
            key_file = self._value("#form-key-file") or None
            if key_file and not cert_file:
                raise ValueError("Client key needs a client certificate.")
            tls = TlsPolicy(
                mode=mode,
                cert_file=cert_file,
                key_file=key_file,
                ca_file=self._value("#form-ca-file") or None,
            )
        return ConnectionDescriptor(name=name, uri=uri, tls=tls)

    def _value(self, selector: str) -> str:
        return self.query_one(selector, Input).value.strip()


__all__ = ["ConnectionFormScreen"]
