"""Rebuild a family projection from the event log."""

from __future__ import annotations

from typing import Iterator

from packages.synap_shared.envelope import EnvelopeKind, new_meta
from packages.synap_shared.logging import get_logger
from services.state.event_store.domain import Event, require_ok
from services.state.event_store.service import EventPublisher
from services.state.event_store.taxonomy import EventStage
from services.state.projection_worker.config import ProjectionWorkerSettings
from services.state.projection_worker.domain import MutationConflict, ReplayResult
from services.state.projection_worker.interfaces import ProjectionRepository
from services.state.projection_worker.worker import DomainWorker

_LOGGER = get_logger(__name__)


class ProjectionReplayer:
    """Clear one family's projection and re-apply its validated history.

    Two passes over the log: the first collects approved events whose
    completion was ``.validated``, the second applies exactly those in
    ``(timestamp, sequence)`` order. Processed-event markers are left alone.
    """

    def __init__(
        self,
        *,
        settings: ProjectionWorkerSettings,
        publisher: EventPublisher,
        repository: ProjectionRepository,
    ) -> None:
        self._settings = settings
        self._publisher = publisher
        self._repository = repository

    def rebuild(self, worker: DomainWorker) -> ReplayResult:
        family = worker.family
        approved: list[Event] = []
        validated_causes: set[str] = set()
        for event in self._iter_events():
            parsed = event.event_type
            if parsed.resource != family:
                continue
            if parsed.stage is EventStage.APPROVED:
                approved.append(event)
            elif parsed.stage is EventStage.VALIDATED and event.causation_id:
                validated_causes.add(event.causation_id)

        cleared = self._repository.clear_table(table=family)
        applied = skipped = 0
        for event in sorted(approved, key=lambda item: (item.timestamp, item.sequence or 0)):
            if event.id not in validated_causes:
                skipped += 1
                continue
            try:
                mutation = worker.plan_mutation(event)
            except MutationConflict as exc:
                _LOGGER.warning("Replay skipped %s: %s", event.id, exc)
                skipped += 1
                continue
            self._repository.put_record(record=mutation.record)
            applied += 1

        _LOGGER.info(
            "Rebuilt %s projection: cleared=%d applied=%d skipped=%d",
            family,
            cleared,
            applied,
            skipped,
        )
        return ReplayResult(
            table=family, scanned=len(approved), applied=applied, skipped=skipped
        )

    def _iter_events(self) -> Iterator[Event]:
        meta = new_meta(
            kind=EnvelopeKind.COMMAND,
            source="projection_replayer",
            principal=self._settings.worker_actor_id,
        )
        after = 0
        while True:
            page = require_ok(
                self._publisher.list_events(
                    meta=meta,
                    after_sequence=after,
                    limit=self._settings.replay_page_size,
                ),
                operation="list_events",
            )
            if not page:
                return
            yield from page
            after = page[-1].sequence or after + len(page)
            if len(page) < self._settings.replay_page_size:
                return
