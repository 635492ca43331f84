"""Seed a sample SQLite database and register it as a saved connection."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

from . import adapters
from .config import CONFIG_FILE, AppConfig, ConnectionConfig, load_config, save_config
from .models import ConnectionDescriptor

LOG = logging.getLogger(__name__)

DEFAULT_DEMO_PATH = Path("demo.db")
DEMO_CONNECTION_NAME = "Demo SQLite Database"

DEMO_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT UNIQUE NOT NULL,
        age INTEGER,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        product_name TEXT NOT NULL,
        quantity INTEGER NOT NULL DEFAULT 1,
        price DECIMAL(10,2) NOT NULL,
        order_date DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (user_id) REFERENCES users(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        description TEXT
    )
    """,
    """
    INSERT OR IGNORE INTO users (name, email, age) VALUES
        ('Alice Johnson', 'alice@example.com', 28),
        ('Bob Smith', 'bob@example.com', 35),
        ('Carol Davis', 'carol@example.com', 42),
        ('David Wilson', 'david@example.com', 31),
        ('Eve Brown', 'eve@example.com', 26)
    """,
    """
    INSERT OR IGNORE INTO categories (name, description) VALUES
        ('Electronics', 'Electronic devices and gadgets'),
        ('Books', 'Physical and digital books'),
        ('Clothing', 'Apparel and accessories'),
        ('Home', 'Home and garden supplies')
    """,
    """
    INSERT INTO orders (user_id, product_name, quantity, price)
    SELECT * FROM (VALUES
        (1, 'Laptop', 1, 999.99),
        (1, 'Mouse', 2, 25.50),
        (2, 'Keyboard', 1, 75.00),
        (3, 'Monitor', 1, 299.99),
        (4, 'Headphones', 1, 149.99),
        (5, 'Webcam', 1, 89.99)
    )
    WHERE NOT EXISTS (SELECT 1 FROM orders)
    """,
)


async def create_demo_database(path: Path = DEFAULT_DEMO_PATH) -> ConnectionDescriptor:
    """Create (or top up) the demo tables in ``path`` and return its descriptor."""

    descriptor = ConnectionDescriptor(name=DEMO_CONNECTION_NAME, uri=f"sqlite:{path}")
    handle = await adapters.connect(descriptor)
    try:
        for statement in DEMO_STATEMENTS:
            await handle.execute(statement.strip())
    finally:
        await handle.close()
    LOG.info("Demo database ready", extra={"path": str(path)})
    return descriptor


def register_demo_connection(config: AppConfig, descriptor: ConnectionDescriptor) -> AppConfig:
    """Return a config that lists the demo connection exactly once."""

    if any(entry.name == descriptor.name for entry in config.connections):
        return config
    connections = [*config.connections, ConnectionConfig.from_descriptor(descriptor)]
    return config.model_copy(update={"connections": connections})


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("path", nargs="?", type=Path, default=DEFAULT_DEMO_PATH, help="SQLite file to create")
    parser.add_argument("--no-register", action="store_true", help="Do not add the connection to config.toml")
    return parser.parse_args(list(argv))


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv or ())
    descriptor = asyncio.run(create_demo_database(args.path))
    if not args.no_register:
        config = load_config()
        updated = register_demo_connection(config, descriptor)
        if updated is not config:
            save_config(updated)
            print(f"Added '{descriptor.name}' connection to {CONFIG_FILE}.")
    print(f"Demo database is ready at {args.path}. Connect with URI {descriptor.uri}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
