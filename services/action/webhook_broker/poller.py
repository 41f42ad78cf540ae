"""Background poller that sends due webhook deliveries."""

from __future__ import annotations

from packages.synap_shared.logging import get_logger
from packages.synap_shared.periodic import PeriodicTask
from services.action.webhook_broker.domain import DeliveryReport
from services.action.webhook_broker.service import WebhookBroker

_LOGGER = get_logger(__name__)


class DeliveryPoller:
    """Call ``process_due`` every ``poll_interval_seconds``."""

    def __init__(self, *, broker: WebhookBroker, interval_seconds: float) -> None:
        self._broker = broker
        self._task = PeriodicTask(
            name="webhook-poller",
            interval_seconds=interval_seconds,
            tick=self.poll_once,
        )

    def poll_once(self) -> DeliveryReport:
        report = self._broker.process_due()
        if report.claimed:
            _LOGGER.debug(
                "Webhook poll: claimed=%d succeeded=%d failed=%d dead_lettered=%d",
                report.claimed,
                report.succeeded,
                report.failed,
                report.dead_lettered,
            )
        return report

    def start(self) -> None:
        self._task.start()

    def stop(self, *, timeout: float = 5.0) -> None:
        self._task.stop(timeout=timeout)

    def run_forever(self) -> None:
        self._task.run_forever()
