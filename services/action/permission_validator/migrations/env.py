"""Alembic environment for Permission Validator schema migrations."""

from __future__ import annotations

from alembic import context
from sqlalchemy import Connection, engine_from_config, pool

from packages.synap_shared.config import load_settings
from packages.synap_shared.manifest import component_id_to_schema_name
from resources.substrates.postgres.config import resolve_postgres_settings
from services.action.permission_validator.component import SERVICE_COMPONENT_ID
from services.action.permission_validator.data.schema import metadata

config = context.config

target_metadata = metadata
schema_name = component_id_to_schema_name(SERVICE_COMPONENT_ID)

# run_startup_migrations hands over an open connection
connection = config.attributes.get("connection")

if connection is None and not config.get_main_option("sqlalchemy.url"):
    postgres_settings = resolve_postgres_settings(load_settings())
    config.set_main_option("sqlalchemy.url", postgres_settings.url.replace("%", "%%"))


def run_migrations_offline() -> None:
    """Run migrations without a live DB connection."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_schemas=True,
        version_table_schema=schema_name,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations using a live DB connection."""
    if connection is not None:
        _run_on(connection)
        return

    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as owned:
        _run_on(owned)


def _run_on(active: Connection) -> None:
    context.configure(
        connection=active,
        target_metadata=target_metadata,
        include_schemas=True,
        version_table_schema=schema_name,
    )

    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
