"""Tests for SQL statement templates."""

from __future__ import annotations

import pytest

from dbtui import statements
from dbtui.models import ColumnDescriptor


def test_quote_value_escapes_and_passes_null() -> None:
    assert statements.quote_value("O'Brien") == "'O''Brien'"
    assert statements.quote_value("NULL") == "NULL"


def test_select_star_with_and_without_limit() -> None:
    assert statements.select_star("users") == "SELECT * FROM users;"
    assert statements.select_star("public.users", 100) == "SELECT * FROM public.users LIMIT 100;"


def test_insert_quotes_values() -> None:
    sql = statements.insert("users", ["name", "age"], ["Ann", "NULL"])

    assert sql == "INSERT INTO users (name, age) VALUES ('Ann', NULL);"


def test_insert_rejects_count_mismatch() -> None:
    with pytest.raises(ValueError):
        statements.insert("users", ["name", "age"], ["Ann"])


def test_update_and_delete() -> None:
    assert statements.update("users", {"name": "Bo"}, "id = 1") == "UPDATE users SET name = 'Bo' WHERE id = 1;"
    assert statements.delete("users") == "DELETE FROM users;"
    assert statements.delete("users", "id = 1") == "DELETE FROM users WHERE id = 1;"
    with pytest.raises(ValueError):
        statements.update("users", {})


def test_create_table_from_columns() -> None:
    columns = [
        ColumnDescriptor(name="id", data_type="INTEGER", nullable=False, primary_key=True),
        ColumnDescriptor(name="email", data_type="TEXT"),
    ]

    sql = statements.create_table("users_copy", columns)

    assert sql == "CREATE TABLE users_copy (\n  id INTEGER NOT NULL PRIMARY KEY,\n  email TEXT\n);"


def test_table_maintenance_statements() -> None:
    assert statements.drop_table("t") == "DROP TABLE t;"
    assert statements.truncate_table("t") == "TRUNCATE TABLE t;"
    assert statements.rename_table("t", "u") == "ALTER TABLE t RENAME TO u;"
    assert statements.create_index("idx_t_a", "t", ["a", "b"], unique=True) == "CREATE UNIQUE INDEX idx_t_a ON t (a, b);"


def test_table_templates_for_qualified_table() -> None:
    columns = [ColumnDescriptor(name="id", data_type="integer"), ColumnDescriptor(name="email", data_type="text")]

    templates = statements.table_templates("public.users", columns, limit=50)

    assert templates["SELECT *"] == "SELECT * FROM public.users LIMIT 50;"
    assert templates["INSERT"] == "INSERT INTO public.users (id, email) VALUES ('value', 'value');"
    assert templates["CREATE INDEX"] == "CREATE INDEX idx_users_id ON public.users (id);"
    assert templates["RENAME"] == "ALTER TABLE public.users RENAME TO users_renamed;"


def test_table_templates_without_columns() -> None:
    templates = statements.table_templates("logs", [])

    assert "INSERT" not in templates
    assert "CREATE TABLE copy" not in templates
    assert templates["DROP"] == "DROP TABLE logs;"
