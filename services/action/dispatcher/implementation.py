"""Lane-partitioned dispatcher with per-subscription retry and dead-lettering."""

from __future__ import annotations

import contextvars
import time
import zlib
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from queue import SimpleQueue
from threading import Condition, Lock, Thread
from typing import Callable

from packages.synap_shared.config import SynapSettings
from packages.synap_shared.envelope import utc_now
from packages.synap_shared.errors import describe_exception
from packages.synap_shared.ids import generate_ulid_str
from packages.synap_shared.logging import fields, get_logger, log_context
from services.action.dispatcher.config import (
    DispatcherSettings,
    resolve_dispatcher_settings,
)
from services.action.dispatcher.domain import (
    DeadLetter,
    DeadLetterCallback,
    DispatcherStats,
    DispatcherUnavailableError,
    EventHandler,
    NonRetryableHandlerError,
    SubscriptionInfo,
)
from services.action.dispatcher.interfaces import DeadLetterRepository
from services.action.dispatcher.patterns import EventPattern
from services.action.dispatcher.service import Dispatcher
from services.state.event_store.domain import Event

_LOGGER = get_logger(__name__)
_STOP = object()


class HandlerTimeoutError(TimeoutError):
    """Raised when one handler invocation exceeds its timeout."""


class HandlerStuckError(NonRetryableHandlerError):
    """Raised when a timed-out handler is still running after its grace."""


@dataclass
class _Subscription:
    name: str
    pattern: EventPattern
    handler: EventHandler
    on_dead_letter: DeadLetterCallback | None
    lanes: list["_Lane"] = field(default_factory=list)


class _Lane:
    """One FIFO queue plus the thread draining it."""

    def __init__(
        self, *, dispatcher: "DefaultDispatcher", subscription: _Subscription, index: int
    ) -> None:
        self._dispatcher = dispatcher
        self._subscription = subscription
        self.index = index
        self.queue: SimpleQueue[object] = SimpleQueue()
        self._thread: Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = Thread(
            target=self._run,
            name=f"dispatch-{self._subscription.name}-{self.index}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self.queue.put(_STOP)

    def join(self, timeout: float | None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while True:
            item = self.queue.get()
            if item is _STOP:
                return
            assert isinstance(item, Event)
            try:
                self._dispatcher._deliver(self._subscription, item, lane=self.index)
            finally:
                self._dispatcher._task_done()


class DefaultDispatcher(Dispatcher):
    """Deliver events through per-subscription lanes.

    Each subscription owns ``lanes_per_subscription`` lanes and an event goes
    to lane ``crc32(subject_id) % lanes``, so one subject is handled in
    append order while different subjects proceed in parallel. Handler calls
    run on a shared pool with a timeout. Failures retry with exponential
    backoff, then dead-letter.
    """

    def __init__(
        self,
        *,
        settings: DispatcherSettings,
        dead_letter_repository: DeadLetterRepository,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._dead_letter_repository = dead_letter_repository
        self._sleep = sleep
        self._lock = Lock()
        self._subscriptions: list[_Subscription] = []
        self._pool: ThreadPoolExecutor | None = None
        self._running = False
        self._idle = Condition()
        self._inflight = 0
        self._delivered = 0
        self._retried = 0
        self._dead_lettered = 0

    @classmethod
    def from_settings(
        cls,
        *,
        settings: SynapSettings,
        dead_letter_repository: DeadLetterRepository,
    ) -> "DefaultDispatcher":
        return cls(
            settings=resolve_dispatcher_settings(settings),
            dead_letter_repository=dead_letter_repository,
        )

    def subscribe(
        self,
        pattern: str,
        handler: EventHandler,
        *,
        name: str | None = None,
        on_dead_letter: DeadLetterCallback | None = None,
    ) -> SubscriptionInfo:
        compiled = EventPattern.compile(pattern)
        with self._lock:
            resolved_name = name or f"{getattr(handler, '__qualname__', 'handler')}[{pattern}]"
            if any(item.name == resolved_name for item in self._subscriptions):
                raise ValueError(f"duplicate subscription name: {resolved_name}")
            subscription = _Subscription(
                name=resolved_name,
                pattern=compiled,
                handler=handler,
                on_dead_letter=on_dead_letter,
            )
            subscription.lanes = [
                _Lane(dispatcher=self, subscription=subscription, index=index)
                for index in range(self._settings.lanes_per_subscription)
            ]
            self._subscriptions.append(subscription)
            if self._running:
                for lane in subscription.lanes:
                    lane.start()
        _LOGGER.info("Subscribed %s to %s", resolved_name, compiled)
        return SubscriptionInfo(
            name=resolved_name,
            pattern=str(compiled),
            lanes=len(subscription.lanes),
        )

    def dispatch(self, event: Event) -> int:
        with self._lock:
            if not self._running:
                raise DispatcherUnavailableError("dispatcher is not running")
            targets = [
                item for item in self._subscriptions if item.pattern.matches(event.type)
            ]
            for subscription in targets:
                lane = subscription.lanes[_lane_index(event.subject_id, len(subscription.lanes))]
                with self._idle:
                    self._inflight += 1
                lane.queue.put(event)
        if not targets:
            _LOGGER.debug("No subscription matched %s", event.type)
        return len(targets)

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._pool = ThreadPoolExecutor(
                max_workers=self._settings.handler_pool_size,
                thread_name_prefix="dispatch-handler",
            )
            self._running = True
            for subscription in self._subscriptions:
                for lane in subscription.lanes:
                    lane.start()

    def stop(self, *, timeout: float = 10.0) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            lanes = [lane for item in self._subscriptions for lane in item.lanes]
        for lane in lanes:
            lane.stop()
        deadline = time.monotonic() + timeout
        for lane in lanes:
            lane.join(max(deadline - time.monotonic(), 0.0))
        pool = self._pool
        self._pool = None
        if pool is not None:
            pool.shutdown(wait=False, cancel_futures=True)

    def join(self, *, timeout: float | None = None) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: self._inflight == 0, timeout=timeout)

    def dead_letters(
        self, *, subscriber: str | None = None, limit: int = 100
    ) -> tuple[DeadLetter, ...]:
        return self._dead_letter_repository.list_dead_letters(
            subscriber=subscriber, limit=limit
        )

    def stats(self) -> DispatcherStats:
        with self._idle:
            return DispatcherStats(
                running=self._running,
                subscriptions=len(self._subscriptions),
                queued=self._inflight,
                delivered=self._delivered,
                retried=self._retried,
                dead_lettered=self._dead_lettered,
            )

    def _task_done(self) -> None:
        with self._idle:
            self._inflight -= 1
            if self._inflight == 0:
                self._idle.notify_all()

    def _deliver(self, subscription: _Subscription, event: Event, *, lane: int) -> None:
        """Run one handler for one event until success or dead-letter."""
        context = {
            fields.EVENT_ID: event.id,
            fields.EVENT_TYPE: event.type,
            fields.SUBJECT_ID: event.subject_id,
            fields.CORRELATION_ID: event.correlation_id,
            fields.SUBSCRIPTION_ID: subscription.name,
            fields.LANE: lane,
        }
        attempt = 0
        with log_context(context):
            while True:
                attempt += 1
                try:
                    self._invoke(subscription, event)
                except NonRetryableHandlerError as exc:
                    self._dead_letter(subscription, event, attempts=attempt, exc=exc)
                    return
                except Exception as exc:  # noqa: BLE001
                    if attempt >= self._settings.max_attempts:
                        self._dead_letter(subscription, event, attempts=attempt, exc=exc)
                        return
                    delay = self._settings.backoff_seconds(attempt)
                    with log_context({fields.ATTEMPT: attempt}):
                        _LOGGER.warning(
                            "Handler failed; retrying in %.3fs: %s",
                            delay,
                            describe_exception(exc),
                        )
                    with self._idle:
                        self._retried += 1
                    self._sleep(delay)
                    continue
                with self._idle:
                    self._delivered += 1
                return

    def _invoke(self, subscription: _Subscription, event: Event) -> None:
        """Run the handler once; a timed-out call is awaited before any retry.

        A pool thread cannot be interrupted, so after ``handler_timeout_seconds``
        the lane keeps waiting up to ``handler_stuck_grace_seconds`` for the
        call to return. Two invocations of one handler for one event never
        overlap. A call still running after the grace is dead-lettered.
        """
        pool = self._pool
        if pool is None:
            raise DispatcherUnavailableError("handler pool is not running")
        ctx = contextvars.copy_context()
        future = pool.submit(ctx.run, subscription.handler, event)
        timeout = self._settings.handler_timeout_seconds
        try:
            future.result(timeout=timeout)
            return
        except FuturesTimeoutError:
            pass
        grace = self._settings.handler_stuck_grace_seconds
        _LOGGER.warning(
            "Handler exceeded %.3fs; waiting up to %.3fs for it to return",
            timeout,
            grace,
        )
        try:
            future.result(timeout=grace)
        except FuturesTimeoutError as exc:
            raise HandlerStuckError(
                f"handler still running {timeout + grace}s after start"
            ) from exc
        raise HandlerTimeoutError(f"handler exceeded {timeout}s")

    def _dead_letter(
        self,
        subscription: _Subscription,
        event: Event,
        *,
        attempts: int,
        exc: Exception,
    ) -> None:
        dead_letter = DeadLetter(
            id=generate_ulid_str(),
            event_id=event.id,
            event_type=event.type,
            subject_id=event.subject_id,
            subscriber=subscription.name,
            attempts=attempts,
            last_error=describe_exception(exc),
            created_at=utc_now(),
        )
        with self._idle:
            self._dead_lettered += 1
        with log_context({fields.ATTEMPT: attempts}):
            _LOGGER.error(
                "Event dead-lettered after %d attempt(s): %s",
                attempts,
                dead_letter.last_error,
            )
        try:
            self._dead_letter_repository.append(dead_letter=dead_letter)
        except Exception as store_exc:  # noqa: BLE001
            _LOGGER.error(
                "Failed to persist dead letter: %s",
                describe_exception(store_exc),
                exc_info=store_exc,
            )
        if subscription.on_dead_letter is None:
            return
        try:
            subscription.on_dead_letter(event, dead_letter)
        except Exception as hook_exc:  # noqa: BLE001
            _LOGGER.error(
                "Dead-letter hook failed: %s",
                describe_exception(hook_exc),
                exc_info=hook_exc,
            )


def _lane_index(subject_id: str, lanes: int) -> int:
    return zlib.crc32(subject_id.encode("utf-8")) % lanes
