"""Schema provisioning for registered pipeline services."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Engine, text

from packages.synap_shared.logging import get_logger
from packages.synap_shared.manifest import get_registry

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class BootstrapResult:
    """Summary of schema bootstrap actions."""

    provisioned_schemas: tuple[str, ...]


def bootstrap_service_schemas(engine: Engine) -> BootstrapResult:
    """Create every registered service schema when absent.

    Tables are owned by each service's Alembic revisions, which run after
    this against the schemas created here.
    """
    services = get_registry().list_services()
    if len(services) == 0:
        raise RuntimeError("no registered services discovered; refusing schema bootstrap")

    provisioned: list[str] = []
    with engine.begin() as connection:
        for service in services:
            schema = service.schema_name
            connection.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema}"'))
            provisioned.append(schema)

    _LOGGER.info("Provisioned %d schema(s)", len(provisioned))
    return BootstrapResult(provisioned_schemas=tuple(provisioned))
