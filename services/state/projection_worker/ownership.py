"""Sole-owner lookup backed by record projections."""

from __future__ import annotations

from services.state.projection_worker.interfaces import ProjectionRepository


class ProjectionOwnershipResolver:
    """Treat ``owner_id`` on the live projection record as the sole owner."""

    def __init__(self, repository: ProjectionRepository) -> None:
        self._repository = repository

    def is_sole_owner(
        self, *, workspace_id: str, table: str, subject_id: str, actor_id: str
    ) -> bool:
        record = self._repository.get_record(table=table, record_id=subject_id)
        if record is None or record.deleted:
            return False
        if workspace_id and record.workspace_id and record.workspace_id != workspace_id:
            return False
        return record.owner_id == actor_id
