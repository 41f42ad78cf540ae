"""Protocols for projection persistence."""

from __future__ import annotations

from typing import Protocol

from services.state.projection_worker.domain import (
    ProcessedEventMarker,
    ProjectionRecord,
)


class ProjectionRepository(Protocol):
    """Projection records plus per-worker processed-event markers."""

    def get_record(self, *, table: str, record_id: str) -> ProjectionRecord | None:
        """Return the current record, tombstones included."""

    def list_records(
        self,
        *,
        table: str,
        workspace_id: str | None,
        include_deleted: bool,
        limit: int,
    ) -> tuple[ProjectionRecord, ...]:
        """Return records of one table family ordered by record id."""

    def get_marker(self, *, worker: str, event_id: str) -> ProcessedEventMarker | None:
        """Return the marker for one worker/event pair."""

    def commit_mutation(
        self,
        *,
        marker: ProcessedEventMarker,
        record: ProjectionRecord,
        expected_version: int | None,
    ) -> bool:
        """Write ``record`` and ``marker`` in one transaction.

        Returns ``False`` without writing when the marker already exists.
        Raises ``MutationConflict`` when the stored version is not
        ``expected_version``.
        """

    def record_failure(self, *, marker: ProcessedEventMarker) -> bool:
        """Insert a failure marker unless one exists; return whether it was new."""

    def put_record(self, *, record: ProjectionRecord) -> None:
        """Unconditionally write one record (replay only)."""

    def clear_table(self, *, table: str) -> int:
        """Delete every record of one table family; return the count."""
