"""Projection repository implementations."""

from __future__ import annotations

from threading import Lock
from typing import Any, Mapping

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert

from resources.substrates.postgres.schema_session import ServiceSchemaSessionProvider
from services.state.projection_worker.data.schema import (
    processed_events,
    projection_records,
)
from services.state.projection_worker.domain import (
    MarkerOutcome,
    MutationConflict,
    ProcessedEventMarker,
    ProjectionRecord,
)
from services.state.projection_worker.interfaces import ProjectionRepository


class InMemoryProjectionRepository(ProjectionRepository):
    """Lock-guarded in-memory projection store."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._records: dict[tuple[str, str], ProjectionRecord] = {}
        self._markers: dict[tuple[str, str], ProcessedEventMarker] = {}

    def get_record(self, *, table: str, record_id: str) -> ProjectionRecord | None:
        with self._lock:
            return self._records.get((table, record_id))

    def list_records(
        self,
        *,
        table: str,
        workspace_id: str | None,
        include_deleted: bool,
        limit: int,
    ) -> tuple[ProjectionRecord, ...]:
        with self._lock:
            rows = sorted(
                (
                    record
                    for (record_table, _), record in self._records.items()
                    if record_table == table
                    and (workspace_id is None or record.workspace_id == workspace_id)
                    and (include_deleted or not record.deleted)
                ),
                key=lambda record: record.record_id,
            )
            return tuple(rows[:limit])

    def get_marker(self, *, worker: str, event_id: str) -> ProcessedEventMarker | None:
        with self._lock:
            return self._markers.get((worker, event_id))

    def commit_mutation(
        self,
        *,
        marker: ProcessedEventMarker,
        record: ProjectionRecord,
        expected_version: int | None,
    ) -> bool:
        marker_key = (marker.worker, marker.event_id)
        record_key = (record.table, record.record_id)
        with self._lock:
            if marker_key in self._markers:
                return False
            current = self._records.get(record_key)
            _check_version(
                current_version=None if current is None else current.version,
                expected_version=expected_version,
                record=record,
            )
            self._records[record_key] = record
            self._markers[marker_key] = marker
            return True

    def record_failure(self, *, marker: ProcessedEventMarker) -> bool:
        with self._lock:
            key = (marker.worker, marker.event_id)
            if key in self._markers:
                return False
            self._markers[key] = marker
            return True

    def put_record(self, *, record: ProjectionRecord) -> None:
        with self._lock:
            self._records[(record.table, record.record_id)] = record

    def clear_table(self, *, table: str) -> int:
        with self._lock:
            keys = [key for key in self._records if key[0] == table]
            for key in keys:
                del self._records[key]
            return len(keys)


class PostgresProjectionRepository(ProjectionRepository):
    """SQL repository over the Projection Worker schema."""

    def __init__(self, sessions: ServiceSchemaSessionProvider) -> None:
        self._sessions = sessions

    def get_record(self, *, table: str, record_id: str) -> ProjectionRecord | None:
        with self._sessions.session() as session:
            row = (
                session.execute(
                    select(projection_records).where(
                        projection_records.c.table_name == table,
                        projection_records.c.record_id == record_id,
                    )
                )
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_record(row)

    def list_records(
        self,
        *,
        table: str,
        workspace_id: str | None,
        include_deleted: bool,
        limit: int,
    ) -> tuple[ProjectionRecord, ...]:
        stmt = (
            select(projection_records)
            .where(projection_records.c.table_name == table)
            .order_by(projection_records.c.record_id)
            .limit(limit)
        )
        if workspace_id is not None:
            stmt = stmt.where(projection_records.c.workspace_id == workspace_id)
        if not include_deleted:
            stmt = stmt.where(projection_records.c.deleted.is_(False))
        with self._sessions.session() as session:
            rows = session.execute(stmt).mappings().all()
            return tuple(_to_record(row) for row in rows)

    def get_marker(self, *, worker: str, event_id: str) -> ProcessedEventMarker | None:
        with self._sessions.session() as session:
            row = (
                session.execute(
                    select(processed_events).where(
                        processed_events.c.worker == worker,
                        processed_events.c.event_id == event_id,
                    )
                )
                .mappings()
                .one_or_none()
            )
            if row is None:
                return None
            return ProcessedEventMarker(
                worker=row["worker"],
                event_id=row["event_id"],
                outcome=MarkerOutcome(row["outcome"]),
                detail=row["detail"],
                processed_at=row["processed_at"],
            )

    def commit_mutation(
        self,
        *,
        marker: ProcessedEventMarker,
        record: ProjectionRecord,
        expected_version: int | None,
    ) -> bool:
        with self._sessions.session() as session:
            inserted = session.execute(
                _insert_marker(marker).returning(processed_events.c.event_id)
            ).first()
            if inserted is None:
                return False
            current_version = session.execute(
                select(projection_records.c.version)
                .where(
                    projection_records.c.table_name == record.table,
                    projection_records.c.record_id == record.record_id,
                )
                .with_for_update()
            ).scalar_one_or_none()
            _check_version(
                current_version=current_version,
                expected_version=expected_version,
                record=record,
            )
            if current_version is None:
                session.execute(insert(projection_records).values(**_record_values(record)))
            else:
                session.execute(
                    update(projection_records)
                    .where(
                        projection_records.c.table_name == record.table,
                        projection_records.c.record_id == record.record_id,
                    )
                    .values(**_record_values(record))
                )
            return True

    def record_failure(self, *, marker: ProcessedEventMarker) -> bool:
        with self._sessions.session() as session:
            inserted = session.execute(
                _insert_marker(marker).returning(processed_events.c.event_id)
            ).first()
            return inserted is not None

    def put_record(self, *, record: ProjectionRecord) -> None:
        values = _record_values(record)
        with self._sessions.session() as session:
            session.execute(
                insert(projection_records)
                .values(**values)
                .on_conflict_do_update(
                    index_elements=["table_name", "record_id"], set_=values
                )
            )

    def clear_table(self, *, table: str) -> int:
        with self._sessions.session() as session:
            result = session.execute(
                delete(projection_records).where(
                    projection_records.c.table_name == table
                )
            )
            return int(result.rowcount or 0)


def _check_version(
    *,
    current_version: int | None,
    expected_version: int | None,
    record: ProjectionRecord,
) -> None:
    if current_version == expected_version:
        return
    if expected_version is None:
        raise MutationConflict(f"{record.table}/{record.record_id} already exists")
    if current_version is None:
        raise MutationConflict(f"{record.table}/{record.record_id} does not exist")
    raise MutationConflict(
        f"{record.table}/{record.record_id} is at version {current_version}, "
        f"expected {expected_version}"
    )


def _insert_marker(marker: ProcessedEventMarker):
    return (
        insert(processed_events)
        .values(
            worker=marker.worker,
            event_id=marker.event_id,
            outcome=marker.outcome.value,
            detail=marker.detail[:2048],
            processed_at=marker.processed_at,
        )
        .on_conflict_do_nothing(index_elements=["worker", "event_id"])
    )


def _record_values(record: ProjectionRecord) -> dict[str, Any]:
    return {
        "table_name": record.table,
        "record_id": record.record_id,
        "workspace_id": record.workspace_id,
        "owner_id": record.owner_id,
        "version": record.version,
        "data": record.data,
        "deleted": record.deleted,
        "updated_by_event_id": record.updated_by_event_id,
    }


def _to_record(row: Mapping[str, Any]) -> ProjectionRecord:
    return ProjectionRecord(
        table=row["table_name"],
        record_id=row["record_id"],
        workspace_id=row["workspace_id"],
        owner_id=row["owner_id"],
        version=int(row["version"]),
        data=dict(row["data"] or {}),
        deleted=bool(row["deleted"]),
        updated_by_event_id=row["updated_by_event_id"],
    )
