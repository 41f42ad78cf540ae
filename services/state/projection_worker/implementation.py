"""Concrete projection service wiring record workers to one repository."""

from __future__ import annotations

from typing import Any

from packages.synap_shared.config import SynapSettings
from packages.synap_shared.envelope import (
    Envelope,
    EnvelopeMeta,
    failure,
    success,
    validate_meta,
)
from packages.synap_shared.errors import (
    ErrorDetail,
    codes,
    dependency_error,
    not_found_error,
    validation_error,
)
from packages.synap_shared.logging import get_logger, public_api_instrumented
from resources.substrates.postgres.errors import normalize_postgres_error
from services.state.event_store.service import EventPublisher
from services.state.projection_worker.component import SERVICE_COMPONENT_ID
from services.state.projection_worker.config import (
    ProjectionWorkerSettings,
    resolve_projection_worker_settings,
)
from services.state.projection_worker.data import (
    PostgresProjectionRepository,
    ProjectionWorkerPostgresRuntime,
)
from services.state.projection_worker.domain import ProjectionRecord, ReplayResult
from services.state.projection_worker.interfaces import ProjectionRepository
from services.state.projection_worker.ownership import ProjectionOwnershipResolver
from services.state.projection_worker.replay import ProjectionReplayer
from services.state.projection_worker.service import ProjectionService
from services.state.projection_worker.worker import DomainWorker, RecordProjectionWorker

_LOGGER = get_logger(__name__)


class DefaultProjectionService(ProjectionService):
    """One ``RecordProjectionWorker`` per configured family over one repository."""

    def __init__(
        self,
        *,
        settings: ProjectionWorkerSettings,
        publisher: EventPublisher,
        repository: ProjectionRepository,
    ) -> None:
        self._settings = settings
        self._repository = repository
        self._workers = {
            family: RecordProjectionWorker(
                family=family,
                settings=settings,
                publisher=publisher,
                repository=repository,
            )
            for family in settings.families
        }
        self._replayer = ProjectionReplayer(
            settings=settings, publisher=publisher, repository=repository
        )
        self._ownership = ProjectionOwnershipResolver(repository)

    @classmethod
    def from_settings(
        cls,
        *,
        settings: SynapSettings,
        publisher: EventPublisher,
        runtime: ProjectionWorkerPostgresRuntime | None = None,
    ) -> "DefaultProjectionService":
        resolved_runtime = runtime or ProjectionWorkerPostgresRuntime.from_settings(
            settings
        )
        return cls(
            settings=resolve_projection_worker_settings(settings),
            publisher=publisher,
            repository=PostgresProjectionRepository(resolved_runtime.schema_sessions),
        )

    @property
    def workers(self) -> tuple[DomainWorker, ...]:
        return tuple(self._workers.values())

    @property
    def ownership(self) -> ProjectionOwnershipResolver:
        return self._ownership

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
        id_fields=("record_id",),
    )
    def get_record(
        self, *, meta: EnvelopeMeta, table: str, record_id: str
    ) -> Envelope[ProjectionRecord]:
        errors = _meta_errors(meta) + self._table_errors(table)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            record = self._repository.get_record(table=table, record_id=record_id)
        except Exception as exc:  # noqa: BLE001
            return _dependency_failure(meta=meta, operation="get_record", exc=exc)
        if record is None or record.deleted:
            return failure(
                meta=meta,
                errors=[
                    not_found_error(
                        "record not found",
                        code=codes.RESOURCE_NOT_FOUND,
                        metadata={"table": table, "record_id": record_id},
                    )
                ],
            )
        return success(meta=meta, payload=record)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def list_records(
        self,
        *,
        meta: EnvelopeMeta,
        table: str,
        workspace_id: str | None = None,
        include_deleted: bool = False,
    ) -> Envelope[tuple[ProjectionRecord, ...]]:
        errors = _meta_errors(meta) + self._table_errors(table)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            records = self._repository.list_records(
                table=table,
                workspace_id=workspace_id,
                include_deleted=include_deleted,
                limit=self._settings.list_limit,
            )
        except Exception as exc:  # noqa: BLE001
            return _dependency_failure(meta=meta, operation="list_records", exc=exc)
        return success(meta=meta, payload=records)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def rebuild(self, *, meta: EnvelopeMeta, table: str) -> Envelope[ReplayResult]:
        errors = _meta_errors(meta) + self._table_errors(table)
        if errors:
            return failure(meta=meta, errors=errors)
        try:
            result = self._replayer.rebuild(self._workers[table])
        except Exception as exc:  # noqa: BLE001
            return _dependency_failure(meta=meta, operation="rebuild", exc=exc)
        return success(meta=meta, payload=result)

    def _table_errors(self, table: str) -> list[ErrorDetail]:
        if table in self._workers:
            return []
        return [
            validation_error(
                f"no projection worker for table: {table}",
                code=codes.INVALID_ARGUMENT,
            )
        ]


def _meta_errors(meta: EnvelopeMeta) -> list[ErrorDetail]:
    try:
        validate_meta(meta)
    except ValueError as exc:
        return [validation_error(str(exc), code=codes.INVALID_ARGUMENT)]
    return []


def _dependency_failure(
    *, meta: EnvelopeMeta, operation: str, exc: Exception
) -> Envelope[Any]:
    _LOGGER.warning(
        "%s failed due to dependency error: exception_type=%s",
        operation,
        type(exc).__name__,
        exc_info=exc,
    )
    module = type(exc).__module__
    if module.startswith("sqlalchemy") or module.startswith("psycopg"):
        return failure(meta=meta, errors=[normalize_postgres_error(exc)])
    return failure(
        meta=meta,
        errors=[
            dependency_error(
                f"{operation} failed",
                code=codes.DEPENDENCY_FAILURE,
                metadata={"exception_type": type(exc).__name__},
            )
        ],
    )
