"""Background thread that runs one callable on a fixed interval."""

from __future__ import annotations

from threading import Event, Thread
from typing import Callable

from packages.synap_shared.errors import describe_exception
from packages.synap_shared.logging import get_logger

_LOGGER = get_logger(__name__)


class PeriodicTask:
    """Run ``tick`` every ``interval_seconds`` on a daemon thread until stopped.

    An exception from ``tick`` is logged and the loop keeps going.
    """

    def __init__(
        self,
        *,
        name: str,
        interval_seconds: float,
        tick: Callable[[], object],
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._name = name
        self._interval_seconds = interval_seconds
        self._tick = tick
        self._stop = Event()
        self._thread: Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the loop in a background daemon thread."""
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = Thread(target=self.run_forever, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, *, timeout: float = 5.0) -> None:
        """Signal the loop to exit and wait for the thread."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def run_forever(self) -> None:
        """Tick immediately, then once per interval until ``stop``."""
        while not self._stop.is_set():
            try:
                self._tick()
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error(
                    "%s tick failed: %s",
                    self._name,
                    describe_exception(exc),
                    exc_info=exc,
                )
            self._stop.wait(self._interval_seconds)
