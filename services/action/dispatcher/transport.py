"""In-process dispatch transport bridging the publisher to the dispatcher."""

from __future__ import annotations

from services.action.dispatcher.service import Dispatcher
from services.state.event_store.domain import Event


class InProcessDispatchTransport:
    """Deliver dispatch signals by queueing straight onto a local dispatcher.

    ``send`` raises ``DispatcherUnavailableError`` while the dispatcher is
    stopped, which leaves the event pending for the sweeper.
    """

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    def send(self, event: Event) -> None:
        self._dispatcher.dispatch(event)
