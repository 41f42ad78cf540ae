"""Background sweeper that resends outstanding dispatch signals."""

from __future__ import annotations

from packages.synap_shared.envelope import EnvelopeKind, new_meta
from packages.synap_shared.logging import get_logger
from packages.synap_shared.periodic import PeriodicTask
from services.state.event_store.component import SERVICE_COMPONENT_ID
from services.state.event_store.config import EventStoreSettings
from services.state.event_store.domain import DispatchSweepResult
from services.state.event_store.service import EventPublisher

_LOGGER = get_logger(__name__)


class DispatchSweeper:
    """Periodically re-signal events still marked ``dispatch_pending``."""

    def __init__(self, *, publisher: EventPublisher, settings: EventStoreSettings) -> None:
        self._publisher = publisher
        self._batch_size = settings.sweep_batch_size
        self._task = PeriodicTask(
            name="dispatch-sweeper",
            interval_seconds=settings.sweep_interval_seconds,
            tick=self.sweep_once,
        )

    def sweep_once(self) -> DispatchSweepResult:
        """Run one pass; a failed pass reports zero work and logs why."""
        result = self._publisher.redispatch_pending(
            meta=new_meta(
                kind=EnvelopeKind.COMMAND,
                source=str(SERVICE_COMPONENT_ID),
                principal="system",
            ),
            limit=self._batch_size,
        )
        if not result.ok or result.value is None:
            _LOGGER.warning(
                "Dispatch sweep failed: %s",
                "; ".join(err.message for err in result.errors),
            )
            return DispatchSweepResult()
        return result.value

    def start(self) -> None:
        self._task.start()

    def stop(self, *, timeout: float = 5.0) -> None:
        self._task.stop(timeout=timeout)

    def run_forever(self) -> None:
        self._task.run_forever()
