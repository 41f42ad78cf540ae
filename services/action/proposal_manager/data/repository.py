"""Proposal repository implementations."""

from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Any, Mapping

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert

from resources.substrates.postgres.schema_session import ServiceSchemaSessionProvider
from services.action.proposal_manager.data.schema import proposals
from services.action.proposal_manager.domain import (
    Proposal,
    ProposalRequest,
    ProposalStatus,
)
from services.action.proposal_manager.interfaces import ProposalRepository


class InMemoryProposalRepository(ProposalRepository):
    """Lock-guarded in-memory proposal store."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._by_id: dict[str, Proposal] = {}
        self._by_origin: dict[str, str] = {}

    def insert_if_absent(self, *, proposal: Proposal) -> Proposal:
        with self._lock:
            existing_id = self._by_origin.get(proposal.originating_event_id)
            if existing_id is not None:
                return self._by_id[existing_id]
            self._by_id[proposal.id] = proposal
            self._by_origin[proposal.originating_event_id] = proposal.id
            return proposal

    def get(self, *, proposal_id: str) -> Proposal | None:
        with self._lock:
            return self._by_id.get(proposal_id)

    def get_by_originating_event(self, *, event_id: str) -> Proposal | None:
        with self._lock:
            proposal_id = self._by_origin.get(event_id)
            return None if proposal_id is None else self._by_id[proposal_id]

    def compare_and_set_resolution(
        self,
        *,
        proposal_id: str,
        status: ProposalStatus,
        resolved_by: str,
        resolution_reason: str | None,
        resolved_at: datetime,
    ) -> Proposal | None:
        with self._lock:
            current = self._by_id.get(proposal_id)
            if current is None or not current.is_pending:
                return None
            resolved = current.model_copy(
                update={
                    "status": status,
                    "resolved_by": resolved_by,
                    "resolution_reason": resolution_reason,
                    "resolved_at": resolved_at,
                }
            )
            self._by_id[proposal_id] = resolved
            return resolved

    def list_pending(
        self, *, workspace_id: str | None, limit: int
    ) -> tuple[Proposal, ...]:
        with self._lock:
            pending = sorted(
                (
                    item
                    for item in self._by_id.values()
                    if item.is_pending
                    and (workspace_id is None or item.workspace_id == workspace_id)
                ),
                key=lambda item: (item.created_at, item.id),
            )
            return tuple(pending[:limit])


class PostgresProposalRepository(ProposalRepository):
    """SQL repository over the Proposal Manager schema."""

    def __init__(self, sessions: ServiceSchemaSessionProvider) -> None:
        self._sessions = sessions

    def insert_if_absent(self, *, proposal: Proposal) -> Proposal:
        with self._sessions.session() as session:
            session.execute(
                insert(proposals)
                .values(
                    id=proposal.id,
                    workspace_id=proposal.workspace_id,
                    target_type=proposal.target_type,
                    status=proposal.status.value,
                    originating_event_id=proposal.originating_event_id,
                    request=proposal.request.model_dump(mode="json"),
                    reason=proposal.reason,
                    decision=proposal.decision,
                    created_at=proposal.created_at,
                )
                .on_conflict_do_nothing(index_elements=["originating_event_id"])
            )
            row = (
                session.execute(
                    select(proposals).where(
                        proposals.c.originating_event_id
                        == proposal.originating_event_id
                    )
                )
                .mappings()
                .one()
            )
            return _to_proposal(row)

    def get(self, *, proposal_id: str) -> Proposal | None:
        with self._sessions.session() as session:
            row = (
                session.execute(select(proposals).where(proposals.c.id == proposal_id))
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_proposal(row)

    def get_by_originating_event(self, *, event_id: str) -> Proposal | None:
        with self._sessions.session() as session:
            row = (
                session.execute(
                    select(proposals).where(
                        proposals.c.originating_event_id == event_id
                    )
                )
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_proposal(row)

    def compare_and_set_resolution(
        self,
        *,
        proposal_id: str,
        status: ProposalStatus,
        resolved_by: str,
        resolution_reason: str | None,
        resolved_at: datetime,
    ) -> Proposal | None:
        with self._sessions.session() as session:
            row = (
                session.execute(
                    update(proposals)
                    .where(proposals.c.id == proposal_id)
                    .where(proposals.c.status == ProposalStatus.PENDING.value)
                    .values(
                        status=status.value,
                        resolved_by=resolved_by,
                        resolution_reason=resolution_reason,
                        resolved_at=resolved_at,
                    )
                    .returning(*proposals.c)
                )
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_proposal(row)

    def list_pending(
        self, *, workspace_id: str | None, limit: int
    ) -> tuple[Proposal, ...]:
        stmt = (
            select(proposals)
            .where(proposals.c.status == ProposalStatus.PENDING.value)
            .order_by(proposals.c.created_at, proposals.c.id)
            .limit(limit)
        )
        if workspace_id is not None:
            stmt = stmt.where(proposals.c.workspace_id == workspace_id)
        with self._sessions.session() as session:
            rows = session.execute(stmt).mappings().all()
            return tuple(_to_proposal(row) for row in rows)


def _to_proposal(row: Mapping[str, Any]) -> Proposal:
    return Proposal(
        id=row["id"],
        workspace_id=row["workspace_id"],
        target_type=row["target_type"],
        status=ProposalStatus(row["status"]),
        originating_event_id=row["originating_event_id"],
        request=ProposalRequest.model_validate(row["request"]),
        reason=row["reason"],
        decision=dict(row["decision"] or {}),
        created_at=row["created_at"],
        resolved_at=row["resolved_at"],
        resolved_by=row["resolved_by"],
        resolution_reason=row["resolution_reason"],
    )
