"""Startup migration orchestration for registered services."""

from __future__ import annotations

import importlib
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import Engine

from packages.synap_shared.logging import get_logger
from packages.synap_shared.manifest import get_registry
from resources.substrates.postgres import bootstrap_service_schemas

_LOGGER = get_logger(__name__)
_SYSTEM_ORDER: tuple[str, ...] = ("state", "action")
REPO_ROOT = Path(__file__).resolve().parents[2]


class MigrationExecutionError(RuntimeError):
    """Raised when startup migration execution fails."""


@dataclass(frozen=True, slots=True)
class MigrationRunResult:
    """Summary of one startup migration pass."""

    imported_components: tuple[str, ...]
    provisioned_schemas: tuple[str, ...]
    executed_alembic_configs: tuple[str, ...]


def import_service_components(*, repo_root: Path | None = None) -> tuple[str, ...]:
    """Import every ``services/<system>/<name>/component.py`` so manifests register."""
    root = (repo_root or REPO_ROOT).resolve()
    imported: list[str] = []
    for component_file in sorted((root / "services").glob("*/*/component.py")):
        module = ".".join(component_file.relative_to(root).with_suffix("").parts)
        importlib.import_module(module)
        imported.append(module)
    return tuple(imported)


def discover_service_migration_configs(
    *,
    repo_root: Path | None = None,
) -> tuple[Path, ...]:
    """Discover alembic config files for registered services in system order."""
    root = (repo_root or REPO_ROOT).resolve()
    services = get_registry().list_services()

    config_paths: list[Path] = []
    for system in _SYSTEM_ORDER:
        for service in services:
            if service.system != system:
                continue
            for module_root in sorted(service.module_roots):
                candidate = (
                    root
                    / Path(*str(module_root).split("."))
                    / "migrations"
                    / "alembic.ini"
                )
                if candidate.exists():
                    config_paths.append(candidate)
                    break
    return tuple(config_paths)


def run_startup_migrations(
    *,
    engine: Engine,
    repo_root: Path | None = None,
    upgrade_fn: Callable[[Config, str], None] = command.upgrade,
) -> MigrationRunResult:
    """Create service schemas, then upgrade each service to its Alembic head.

    Each upgrade runs in its own transaction on a connection from ``engine``,
    handed to the service's ``env.py`` through ``Config.attributes``.
    """
    imported = import_service_components(repo_root=repo_root)
    bootstrap_result = bootstrap_service_schemas(engine)
    configs = discover_service_migration_configs(repo_root=repo_root)

    executed: list[str] = []
    for config_path in configs:
        config = Config(str(config_path))
        try:
            with engine.begin() as connection:
                config.attributes["connection"] = connection
                upgrade_fn(config, "head")
        except Exception as exc:
            raise MigrationExecutionError(
                f"startup migration failed for config '{config_path}'"
            ) from exc
        executed.append(str(config_path))

    _LOGGER.info("Upgraded %d service(s) to head", len(executed))
    return MigrationRunResult(
        imported_components=imported,
        provisioned_schemas=bootstrap_result.provisioned_schemas,
        executed_alembic_configs=tuple(executed),
    )
