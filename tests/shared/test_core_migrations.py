"""Tests for startup migration discovery, execution and revision contents."""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql

from packages.synap_core.migrations import (
    REPO_ROOT,
    MigrationExecutionError,
    discover_service_migration_configs,
    run_startup_migrations,
)
from packages.synap_core.pipeline import service_metadata
from packages.synap_shared.manifest import get_registry
from services.state.event_store.data.schema import OUTCOME_INDEX_NAME

OFFLINE_URL = "postgresql+psycopg://synap@localhost:5432/synap"


@dataclass(frozen=True, slots=True)
class _FakeService:
    """Minimal service manifest shape for migration discovery tests."""

    system: str
    module_roots: frozenset[str]


@dataclass(frozen=True, slots=True)
class _FakeRegistry:
    services: tuple[_FakeService, ...]

    def list_services(self) -> tuple[_FakeService, ...]:
        return self.services


def _write_ini(root: Path, *parts: str) -> Path:
    ini = root.joinpath(*parts, "migrations", "alembic.ini")
    ini.parent.mkdir(parents=True)
    ini.write_text("[alembic]\n", encoding="utf-8")
    return ini


def _migration_ini(schema: str) -> Path:
    for service in get_registry().list_services():
        if service.schema_name == schema:
            (module_root,) = service.module_roots
            return REPO_ROOT / Path(*module_root.split(".")) / "migrations" / "alembic.ini"
    raise AssertionError(f"no registered service owns schema {schema}")


def _offline_sql(schema: str) -> str:
    buffer = io.StringIO()
    config = Config(str(_migration_ini(schema)), output_buffer=buffer)
    config.set_main_option("sqlalchemy.url", OFFLINE_URL)
    command.upgrade(config, "head", sql=True)
    return buffer.getvalue()


def test_discover_service_migration_configs_orders_by_system(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """State services migrate before action services."""
    action_ini = _write_ini(tmp_path, "services", "action", "b")
    state_ini = _write_ini(tmp_path, "services", "state", "a")
    registry = _FakeRegistry(
        services=(
            _FakeService(system="action", module_roots=frozenset({"services.action.b"})),
            _FakeService(system="state", module_roots=frozenset({"services.state.a"})),
            _FakeService(system="action", module_roots=frozenset({"services.action.c"})),
        )
    )
    monkeypatch.setattr("packages.synap_core.migrations.get_registry", lambda: registry)

    configs = discover_service_migration_configs(repo_root=tmp_path)

    assert configs == (state_ini, action_ini)


def test_run_startup_migrations_executes_bootstrap_then_alembic_upgrades(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    ini_a = _write_ini(tmp_path, "services", "state", "a")
    ini_b = _write_ini(tmp_path, "services", "action", "b")
    order: list[str] = []

    def _bootstrap(engine: object) -> SimpleNamespace:
        order.append("bootstrap")
        return SimpleNamespace(provisioned_schemas=("service_a", "service_b"))

    monkeypatch.setattr(
        "packages.synap_core.migrations.bootstrap_service_schemas", _bootstrap
    )
    monkeypatch.setattr(
        "packages.synap_core.migrations.discover_service_migration_configs",
        lambda repo_root=None: (ini_a, ini_b),
    )

    def _upgrade(config: Config, revision: str) -> None:
        assert config.attributes["connection"] is not None
        order.append(f"{config.config_file_name}@{revision}")

    engine = create_engine("sqlite://")
    try:
        result = run_startup_migrations(
            engine=engine, repo_root=tmp_path, upgrade_fn=_upgrade
        )
    finally:
        engine.dispose()

    assert result.imported_components == ()
    assert result.provisioned_schemas == ("service_a", "service_b")
    assert result.executed_alembic_configs == (str(ini_a), str(ini_b))
    assert order == ["bootstrap", f"{ini_a}@head", f"{ini_b}@head"]


def test_run_startup_migrations_raises_on_upgrade_failure(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    ini = _write_ini(tmp_path, "services", "state", "a")
    monkeypatch.setattr(
        "packages.synap_core.migrations.bootstrap_service_schemas",
        lambda engine: SimpleNamespace(provisioned_schemas=()),
    )
    monkeypatch.setattr(
        "packages.synap_core.migrations.discover_service_migration_configs",
        lambda repo_root=None: (ini,),
    )

    def _boom(config: Config, revision: str) -> None:
        raise RuntimeError("boom")

    engine = create_engine("sqlite://")
    try:
        with pytest.raises(MigrationExecutionError, match="startup migration failed"):
            run_startup_migrations(engine=engine, repo_root=tmp_path, upgrade_fn=_boom)
    finally:
        engine.dispose()


def test_every_wired_service_ships_a_migration_config() -> None:
    configs = discover_service_migration_configs()

    assert set(configs) == {_migration_ini(schema) for schema in service_metadata()}


@pytest.mark.parametrize("schema", sorted(service_metadata()))
def test_initial_revision_creates_every_declared_table_and_column(schema: str) -> None:
    sql = _offline_sql(schema)
    quote = postgresql.dialect().identifier_preparer.quote

    assert f"CREATE TABLE {schema}.alembic_version" in sql
    for table in service_metadata()[schema].sorted_tables:
        assert f"CREATE TABLE {table.fullname} (" in sql
        statement = sql.split(f"CREATE TABLE {table.fullname} (", 1)[1].split(";", 1)[0]
        for column in table.columns:
            assert f"\t{quote(column.name)} " in statement, f"{table.fullname}.{column.name}"


def test_event_store_revision_enforces_one_outcome_per_group() -> None:
    sql = _offline_sql("service_event_store")

    assert f"CREATE UNIQUE INDEX {OUTCOME_INDEX_NAME}" in sql
    assert "WHERE outcome_group IS NOT NULL" in sql


def test_proposal_revision_stores_full_length_reasons() -> None:
    sql = _offline_sql("service_proposal_manager")

    assert "reason VARCHAR(2000) NOT NULL" in sql
