"""Tests for the shared data model."""

from __future__ import annotations

import pytest

from dbtui.models import (
    ConnectionDescriptor,
    EngineKind,
    QueryResult,
    TableDescriptor,
    TlsMode,
    TlsPolicy,
    UnsupportedSchemeError,
)


@pytest.mark.parametrize(
    ("uri", "kind"),
    [
        ("sqlite::memory:", EngineKind.SQLITE),
        ("sqlite:///tmp/demo.db", EngineKind.SQLITE),
        ("postgres://localhost/app", EngineKind.POSTGRES),
        ("postgresql://user:pw@db:5432/app", EngineKind.POSTGRES),
        ("mysql://root@localhost/shop", EngineKind.MYSQL),
    ],
)
def test_engine_kind_classifies_uri_schemes(uri: str, kind: EngineKind) -> None:
    assert EngineKind.from_uri(uri) is kind


def test_descriptor_rejects_unknown_scheme() -> None:
    with pytest.raises(UnsupportedSchemeError):
        ConnectionDescriptor(name="Oracle", uri="oracle://localhost/db")


def test_unknown_scheme_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        EngineKind.from_uri("http://example.com")


def test_descriptor_derives_kind_and_keeps_tls() -> None:
    policy = TlsPolicy(mode=TlsMode.VERIFY_FULL, ca_file="/etc/ssl/ca.pem")
    descriptor = ConnectionDescriptor(name="Prod", uri="postgresql://db/app").with_tls(policy)

    assert descriptor.kind is EngineKind.POSTGRES
    assert descriptor.kind.display_name == "PostgreSQL"
    assert descriptor.tls == policy
    assert descriptor == ConnectionDescriptor(name="Prod", uri="postgresql://db/app", tls=policy)


def test_table_qualified_name() -> None:
    assert TableDescriptor(name="users").qualified_name == "users"
    assert TableDescriptor(name="users", schema="public").qualified_name == "public.users"


def test_query_result_rejects_ragged_rows() -> None:
    with pytest.raises(ValueError):
        QueryResult(columns=("id", "name"), rows=(("1", "alice"), ("2",)), elapsed_ms=0)


def test_query_result_total_count_copy() -> None:
    result = QueryResult(columns=("id",), rows=(("1",), ("2",)), elapsed_ms=3)

    updated = result.with_total_count(120)

    assert result.total_count is None
    assert updated.total_count == 120
    assert updated.rows == result.rows
    assert updated.row_count == 2
