"""App-level tests driven through Textual's pilot."""

from __future__ import annotations

from pathlib import Path

import pytest
from textual.widgets import Button, DataTable, Input, ListView

from dbtui import config as config_module
from dbtui.app import DbtuiApp, parse_args
from dbtui.config import AppConfig, ConnectionConfig, load_config
from dbtui.connections import LifecycleState
from dbtui.models import ConnectionDescriptor, TlsMode, TlsPolicy
from dbtui.providers import ConnectionSwitchProvider, StatementTemplateProvider, TableRefreshProvider
from dbtui.widgets import ConnectionFormScreen


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")
    return AppConfig(connections=[ConnectionConfig(name="Memory", uri="sqlite::memory:")])


def test_app_registers_command_providers(config: AppConfig) -> None:
    app = DbtuiApp(config)

    assert ConnectionSwitchProvider in app.COMMANDS
    assert TableRefreshProvider in app.COMMANDS
    assert StatementTemplateProvider in app.COMMANDS
    assert app.session_manager.descriptors == config.descriptors()
    assert app.session_manager.page_size == config.page_size


def test_parse_args_create_demo_flag() -> None:
    assert parse_args([]).create_demo is None
    assert parse_args(["--create-demo"]).create_demo == Path("demo.db")
    assert parse_args(["--create-demo", "other.db"]).create_demo == Path("other.db")


@pytest.mark.anyio
async def test_app_connects_and_renders_results(config: AppConfig) -> None:
    app = DbtuiApp(config)

    async with app.run_test() as pilot:
        app.connect_to(0)
        for _ in range(20):
            await pilot.pause(0.1)
            if app.session_manager.lifecycle_state is not LifecycleState.CONNECTING:
                break
        assert app.session_manager.state.connected is True

        await app.session_manager.run_query("SELECT 1 AS one, 'two' AS two")
        await pilot.pause()

        table = app.query_one("#query-results", DataTable)
        assert table.row_count == 1
        assert len(table.columns) == 2


@pytest.mark.anyio
async def test_app_rejects_bad_connection_index(config: AppConfig) -> None:
    app = DbtuiApp(config)

    async with app.run_test() as pilot:
        app.connect_to(9)
        await pilot.pause()

        assert app.session_manager.lifecycle_state is LifecycleState.IDLE


@pytest.mark.anyio
async def test_add_and_remove_connection_persist(config: AppConfig) -> None:
    app = DbtuiApp(config)

    async with app.run_test() as pilot:
        app.add_connection(ConnectionDescriptor(name="Shop", uri="mysql://root@localhost/shop"))
        await pilot.pause()

        assert [entry.name for entry in load_config().connections] == ["Memory", "Shop"]
        assert len(app.query_one("#connection-list", ListView).children) == 2

        app.remove_connection(0)
        await pilot.pause()

        assert [entry.name for entry in load_config().connections] == ["Shop"]
        assert [descriptor.name for descriptor in app.session_manager.descriptors] == ["Shop"]


@pytest.mark.anyio
async def test_remember_sidebar_width_persists(config: AppConfig) -> None:
    app = DbtuiApp(config)

    async with app.run_test():
        app.remember_sidebar_width(40)

    assert load_config().layout.sidebar_width == 40


@pytest.mark.anyio
async def test_edit_connection_replaces_entry_in_place(config: AppConfig) -> None:
    app = DbtuiApp(config)

    async with app.run_test() as pilot:
        app.action_edit_connection()
        await pilot.pause()
        form = app.screen
        assert isinstance(form, ConnectionFormScreen)
        assert form.query_one("#form-name", Input).value == "Memory"
        assert form.query_one("#form-host", Input).value == ":memory:"

        form.query_one("#form-name", Input).value = "Scratch"
        form.query_one("#form-save", Button).press()
        await pilot.pause(0.1)

        assert not isinstance(app.screen, ConnectionFormScreen)
        assert [(entry.name, entry.uri) for entry in load_config().connections] == [("Scratch", "sqlite::memory:")]
        assert [descriptor.name for descriptor in app.session_manager.descriptors] == ["Scratch"]


@pytest.mark.anyio
async def test_connection_form_keeps_uri_parameters_and_client_certificates(config: AppConfig) -> None:
    policy = TlsPolicy(mode=TlsMode.VERIFY_CA, cert_file="/tls/client.pem", key_file="/tls/client.key", ca_file="/tls/ca.pem")
    descriptor = ConnectionDescriptor(name="Shop", uri="mysql://root:pw@db:3307/shop?ssl-mode=REQUIRED", tls=policy)
    app = DbtuiApp(config)

    async with app.run_test() as pilot:
        form = ConnectionFormScreen(descriptor)
        await app.push_screen(form)
        await pilot.pause()

        assert form.query_one("#form-cert-file", Input).value == "/tls/client.pem"
        assert form.query_one("#form-key-file", Input).value == "/tls/client.key"
        assert form.query_one("#form-port", Input).value == "3307"
        assert form.build_descriptor() == descriptor

        form.query_one("#form-cert-file", Input).value = ""
        with pytest.raises(ValueError):
            form.build_descriptor()
