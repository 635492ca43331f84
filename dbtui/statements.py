"""SQL statement templates offered from the table browser."""

from __future__ import annotations

from typing import Mapping, Sequence

from .models import ColumnDescriptor


def quote_value(value: str) -> str:
    """Render a display value as a SQL literal; ``NULL`` passes through."""

    if value == "NULL":
        return "NULL"
    return "'" + value.replace("'", "''") + "'"


def select_star(table: str, limit: int | None = None) -> str:
    limit_clause = f" LIMIT {limit}" if limit is not None else ""
    return f"SELECT * FROM {table}{limit_clause};"


def insert(table: str, columns: Sequence[str], values: Sequence[str]) -> str:
    if len(columns) != len(values):
        raise ValueError("Column and value counts differ.")
    rendered = ", ".join(quote_value(value) for value in values)
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({rendered});"


def update(table: str, assignments: Mapping[str, str], where: str | None = None) -> str:
    if not assignments:
        raise ValueError("UPDATE needs at least one assignment.")
    sets = ", ".join(f"{column} = {quote_value(value)}" for column, value in assignments.items())
    where_clause = f" WHERE {where}" if where else ""
    return f"UPDATE {table} SET {sets}{where_clause};"


def delete(table: str, where: str | None = None) -> str:
    where_clause = f" WHERE {where}" if where else ""
    return f"DELETE FROM {table}{where_clause};"


def create_table(table: str, columns: Sequence[ColumnDescriptor]) -> str:
    """Rebuild a CREATE TABLE statement from introspected columns."""

    definitions = []
    for column in columns:
        definition = f"{column.name} {column.data_type}"
        if not column.nullable:
            definition += " NOT NULL"
        if column.primary_key:
            definition += " PRIMARY KEY"
        definitions.append(definition)
    body = ",\n  ".join(definitions)
    return f"CREATE TABLE {table} (\n  {body}\n);"


def drop_table(table: str) -> str:
    return f"DROP TABLE {table};"


def truncate_table(table: str) -> str:
    return f"TRUNCATE TABLE {table};"


def rename_table(old_name: str, new_name: str) -> str:
    return f"ALTER TABLE {old_name} RENAME TO {new_name};"


def create_index(index_name: str, table: str, columns: Sequence[str], *, unique: bool = False) -> str:
    keyword = "UNIQUE INDEX" if unique else "INDEX"
    return f"CREATE {keyword} {index_name} ON {table} ({', '.join(columns)});"


def table_templates(
    table: str,
    columns: Sequence[ColumnDescriptor],
    *,
    limit: int | None = None,
) -> dict[str, str]:
    """Starter statements for a (possibly schema-qualified) table, keyed by label."""

    base_name = table.rsplit(".", 1)[-1]
    names = [column.name for column in columns]
    templates = {"SELECT *": select_star(table, limit)}
    if names:
        templates["INSERT"] = insert(table, names, ["value"] * len(names))
        templates["UPDATE"] = update(table, {names[0]: "new_value"})
    templates["DELETE"] = delete(table)
    if columns:
        templates["CREATE TABLE copy"] = create_table(f"{table}_copy", columns)
        templates["CREATE INDEX"] = create_index(f"idx_{base_name}_{names[0]}", table, names[:1])
    templates["RENAME"] = rename_table(table, f"{base_name}_renamed")
    templates["TRUNCATE"] = truncate_table(table)
    templates["DROP"] = drop_table(table)
    return templates


__all__ = [
    "create_index",
    "create_table",
    "delete",
    "drop_table",
    "insert",
    "quote_value",
    "rename_table",
    "select_star",
    "table_templates",
    "truncate_table",
    "update",
]
