"""Tests for the demo database seeder."""

from __future__ import annotations

from pathlib import Path

import pytest

from dbtui import adapters, demo
from dbtui import config as config_module
from dbtui.config import AppConfig, load_config
from dbtui.models import ConnectionDescriptor


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.mark.anyio
async def test_create_demo_database_is_repeatable(tmp_path: Path) -> None:
    path = tmp_path / "demo.db"

    descriptor = await demo.create_demo_database(path)
    await demo.create_demo_database(path)

    handle = await adapters.connect(descriptor)
    try:
        tables = {table.name: table.row_count for table in await handle.list_tables()}
    finally:
        await handle.close()
    assert descriptor.name == demo.DEMO_CONNECTION_NAME
    assert tables["users"] == 5
    assert tables["orders"] == 6
    assert tables["categories"] == 4


def test_register_demo_connection_only_once(tmp_path: Path) -> None:
    descriptor = ConnectionDescriptor(name=demo.DEMO_CONNECTION_NAME, uri=f"sqlite:{tmp_path / 'demo.db'}")
    config = AppConfig()

    updated = demo.register_demo_connection(config, descriptor)
    again = demo.register_demo_connection(updated, descriptor)

    assert len(updated.connections) == len(config.connections) + 1
    assert again is updated


def test_main_registers_connection(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")
    path = tmp_path / "sample.db"

    assert demo.main([str(path)]) == 0

    assert path.exists()
    names = [entry.name for entry in load_config().connections]
    assert names.count(demo.DEMO_CONNECTION_NAME) == 1


def test_main_can_skip_registration(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")

    assert demo.main([str(tmp_path / "sample.db"), "--no-register"]) == 0

    assert not (tmp_path / "config.toml").exists()
