"""Shared dataclasses used across the adapter, query and session modules."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum


class UnsupportedSchemeError(ValueError):
    """Raised when a connection URI does not map to a known engine."""


class EngineKind(str, Enum):
    """Database engines the client knows how to talk to."""

    SQLITE = "sqlite"
    POSTGRES = "postgres"
    MYSQL = "mysql"

    @classmethod
    def from_uri(cls, uri: str) -> "EngineKind":
        """Classify a connection URI by its scheme."""

        if uri.startswith("sqlite:"):
            return cls.SQLITE
        if uri.startswith(("postgres://", "postgresql://")):
            return cls.POSTGRES
        if uri.startswith("mysql://"):
            return cls.MYSQL
        raise UnsupportedSchemeError(f"Unsupported database URL format: {uri!r}")

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    EngineKind.SQLITE: "SQLite",
    EngineKind.POSTGRES: "PostgreSQL",
    EngineKind.MYSQL: "MySQL",
}


class TlsMode(str, Enum):
    """TLS negotiation modes for the server engines."""

    DISABLED = "disabled"
    REQUIRE = "require"
    VERIFY_CA = "verify-ca"
    VERIFY_FULL = "verify-full"


@dataclass(frozen=True, slots=True)
class TlsPolicy:
    """Structured TLS settings attached to a connection."""

    mode: TlsMode = TlsMode.DISABLED
    cert_file: str | None = None
    key_file: str | None = None
    ca_file: str | None = None


@dataclass(frozen=True, slots=True)
class ConnectionDescriptor:
    """Immutable description of one saved connection.

    The engine kind is derived from the URI scheme when the descriptor is
    built, so an unrecognized scheme never makes it past construction.
    """

    name: str
    uri: str
    tls: TlsPolicy | None = None
    kind: EngineKind = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", EngineKind.from_uri(self.uri))

    def with_tls(self, policy: TlsPolicy | None) -> "ConnectionDescriptor":
        """Return a copy carrying the given TLS policy."""

        return ConnectionDescriptor(name=self.name, uri=self.uri, tls=policy)


@dataclass(frozen=True, slots=True)
class TableDescriptor:
    """Table entry returned by schema introspection."""

    name: str
    schema: str | None = None
    row_count: int | None = None

    @property
    def qualified_name(self) -> str:
        if self.schema:
            return f"{self.schema}.{self.name}"
        return self.name


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """Column entry returned by schema introspection."""

    name: str
    data_type: str
    nullable: bool = True
    primary_key: bool = False


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Normalized, engine-agnostic query output returned to the UI.

    ``rows`` is capped by the safety limit; ``total_count`` is not.
    """

    columns: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    elapsed_ms: int
    affected_rows: int | None = None
    total_count: int | None = None

    def __post_init__(self) -> None:
        width = len(self.columns)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                raise ValueError(f"Row {index} has {len(row)} cells; expected {width}.")

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def with_total_count(self, total_count: int | None) -> "QueryResult":
        return replace(self, total_count=total_count)


__all__ = [
    "ColumnDescriptor",
    "ConnectionDescriptor",
    "EngineKind",
    "QueryResult",
    "TableDescriptor",
    "TlsMode",
    "TlsPolicy",
    "UnsupportedSchemeError",
]
