"""Authoritative in-process Python API for projection reads and rebuilds."""

from __future__ import annotations

from abc import ABC, abstractmethod

from packages.synap_shared.envelope import Envelope, EnvelopeMeta
from services.state.projection_worker.domain import ProjectionRecord, ReplayResult
from services.state.projection_worker.worker import DomainWorker


class ProjectionService(ABC):
    """Read side of the record projections plus replay administration."""

    @property
    @abstractmethod
    def workers(self) -> tuple[DomainWorker, ...]:
        """Workers to subscribe, one per table family."""

    @abstractmethod
    def get_record(
        self, *, meta: EnvelopeMeta, table: str, record_id: str
    ) -> Envelope[ProjectionRecord]:
        """Read one live record."""

    @abstractmethod
    def list_records(
        self,
        *,
        meta: EnvelopeMeta,
        table: str,
        workspace_id: str | None = None,
        include_deleted: bool = False,
    ) -> Envelope[tuple[ProjectionRecord, ...]]:
        """List records of one table family."""

    @abstractmethod
    def rebuild(self, *, meta: EnvelopeMeta, table: str) -> Envelope[ReplayResult]:
        """Rebuild one family projection from the event log."""
