"""Unit tests for lane ordering, retries and dead-lettering in the dispatcher."""

from __future__ import annotations

import threading
import time
import zlib

import pytest

from packages.synap_shared.envelope import utc_now
from packages.synap_shared.ids import generate_ulid_str
from services.action.dispatcher.config import DispatcherSettings
from services.action.dispatcher.data.repository import InMemoryDeadLetterRepository
from services.action.dispatcher.domain import (
    DeadLetter,
    DispatcherUnavailableError,
    NonRetryableHandlerError,
)
from services.action.dispatcher.implementation import DefaultDispatcher
from services.action.dispatcher.transport import InProcessDispatchTransport
from services.state.event_store.domain import Event, EventSource


def _event(subject_id: str = "entity-1", type_: str = "entities.create.requested", **data) -> Event:
    return Event(
        id=generate_ulid_str(),
        type=type_,
        subject_id=subject_id,
        subject_type="entity",
        data=data,
        actor_id="user-1",
        source=EventSource.USER_API,
        timestamp=utc_now(),
    )


class _SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeps() -> _SleepRecorder:
    return _SleepRecorder()


@pytest.fixture
def dead_letters() -> InMemoryDeadLetterRepository:
    return InMemoryDeadLetterRepository()


def _dispatcher(
    dead_letters: InMemoryDeadLetterRepository,
    sleeps: _SleepRecorder,
    **overrides,
) -> DefaultDispatcher:
    settings = DispatcherSettings(**{"lanes_per_subscription": 4, **overrides})
    return DefaultDispatcher(
        settings=settings, dead_letter_repository=dead_letters, sleep=sleeps
    )


def test_dispatch_requires_running_dispatcher(dead_letters, sleeps) -> None:
    """Signals sent to a stopped dispatcher should raise so the outbox keeps them."""
    dispatcher = _dispatcher(dead_letters, sleeps)
    dispatcher.subscribe("*", lambda event: None, name="noop")

    with pytest.raises(DispatcherUnavailableError):
        InProcessDispatchTransport(dispatcher).send(_event())


def test_events_for_one_subject_are_handled_in_order(dead_letters, sleeps) -> None:
    """One subject maps to one lane, so handlers observe append order."""
    seen: list[int] = []
    dispatcher = _dispatcher(dead_letters, sleeps)
    dispatcher.subscribe("entities.*", lambda event: seen.append(event.data["n"]), name="rec")
    dispatcher.start()
    try:
        for n in range(25):
            dispatcher.dispatch(_event(n=n))
        assert dispatcher.join(timeout=5) is True
    finally:
        dispatcher.stop()

    assert seen == list(range(25))


def test_unmatched_events_are_not_delivered(dead_letters, sleeps) -> None:
    dispatcher = _dispatcher(dead_letters, sleeps)
    dispatcher.subscribe("*.*.validated", lambda event: None, name="validated-only")
    dispatcher.start()
    try:
        assert dispatcher.dispatch(_event()) == 0
    finally:
        dispatcher.stop()


def test_blocked_subject_does_not_stall_other_subjects(dead_letters, sleeps) -> None:
    """Subjects on different lanes proceed while one lane is busy."""
    lanes = 4
    blocked = "entity-blocked"
    other = next(
        candidate
        for candidate in (f"entity-{n}" for n in range(100))
        if zlib.crc32(candidate.encode()) % lanes != zlib.crc32(blocked.encode()) % lanes
    )
    release = threading.Event()
    other_done = threading.Event()

    def handler(event: Event) -> None:
        if event.subject_id == blocked:
            release.wait(5)
        else:
            other_done.set()

    dispatcher = _dispatcher(dead_letters, sleeps, lanes_per_subscription=lanes)
    dispatcher.subscribe("*", handler, name="mixed")
    dispatcher.start()
    try:
        dispatcher.dispatch(_event(subject_id=blocked))
        dispatcher.dispatch(_event(subject_id=other))
        assert other_done.wait(5) is True
        release.set()
        assert dispatcher.join(timeout=5) is True
    finally:
        release.set()
        dispatcher.stop()


def test_failing_subscription_does_not_affect_other_subscriptions(
    dead_letters, sleeps
) -> None:
    delivered: list[str] = []

    def broken(event: Event) -> None:
        raise RuntimeError("boom")

    dispatcher = _dispatcher(dead_letters, sleeps, max_attempts=2)
    dispatcher.subscribe("*", broken, name="broken")
    dispatcher.subscribe("*", lambda event: delivered.append(event.id), name="healthy")
    dispatcher.start()
    try:
        event = _event()
        assert dispatcher.dispatch(event) == 2
        assert dispatcher.join(timeout=5) is True
    finally:
        dispatcher.stop()

    assert delivered == [event.id]
    letters = dispatcher.dead_letters()
    assert [letter.subscriber for letter in letters] == ["broken"]


def test_transient_failures_retry_with_exponential_backoff(dead_letters, sleeps) -> None:
    calls: list[str] = []

    def flaky(event: Event) -> None:
        calls.append(event.id)
        if len(calls) < 3:
            raise ConnectionError("transient")

    dispatcher = _dispatcher(
        dead_letters,
        sleeps,
        max_attempts=5,
        retry_backoff_base_seconds=0.5,
        retry_backoff_max_seconds=30,
    )
    dispatcher.subscribe("*", flaky, name="flaky")
    dispatcher.start()
    try:
        dispatcher.dispatch(_event())
        assert dispatcher.join(timeout=5) is True
    finally:
        dispatcher.stop()

    assert len(calls) == 3
    assert sleeps.delays == [0.5, 1.0]
    assert dispatcher.dead_letters() == ()
    stats = dispatcher.stats()
    assert stats.delivered == 1
    assert stats.retried == 2


def test_exhausted_retries_dead_letter_and_invoke_hook(dead_letters, sleeps) -> None:
    hooked: list[tuple[Event, DeadLetter]] = []

    def always_fails(event: Event) -> None:
        raise ValueError("bad payload")

    dispatcher = _dispatcher(
        dead_letters,
        sleeps,
        max_attempts=3,
        retry_backoff_base_seconds=1,
        retry_backoff_max_seconds=1.5,
    )
    dispatcher.subscribe(
        "*",
        always_fails,
        name="worker",
        on_dead_letter=lambda event, letter: hooked.append((event, letter)),
    )
    dispatcher.start()
    try:
        event = _event()
        dispatcher.dispatch(event)
        assert dispatcher.join(timeout=5) is True
    finally:
        dispatcher.stop()

    assert sleeps.delays == [1, 1.5]
    (letter,) = dead_letters.list_dead_letters()
    assert letter.event_id == event.id
    assert letter.attempts == 3
    assert letter.last_error == "ValueError: bad payload"
    assert hooked == [(event, letter)]


def test_non_retryable_error_dead_letters_immediately(dead_letters, sleeps) -> None:
    def reject(event: Event) -> None:
        raise NonRetryableHandlerError("schema mismatch")

    dispatcher = _dispatcher(dead_letters, sleeps, max_attempts=5)
    dispatcher.subscribe("*", reject, name="strict")
    dispatcher.start()
    try:
        dispatcher.dispatch(_event())
        assert dispatcher.join(timeout=5) is True
    finally:
        dispatcher.stop()

    (letter,) = dispatcher.dead_letters(subscriber="strict")
    assert letter.attempts == 1
    assert sleeps.delays == []


def test_handler_timeout_counts_as_failure(dead_letters, sleeps) -> None:
    def slow(event: Event) -> None:
        time.sleep(0.2)

    dispatcher = _dispatcher(
        dead_letters,
        sleeps,
        max_attempts=1,
        handler_timeout_seconds=0.05,
        handler_stuck_grace_seconds=2,
    )
    dispatcher.subscribe("*", slow, name="slow")
    dispatcher.start()
    try:
        dispatcher.dispatch(_event())
        assert dispatcher.join(timeout=5) is True
    finally:
        dispatcher.stop()

    (letter,) = dispatcher.dead_letters()
    assert letter.last_error.startswith("HandlerTimeoutError")


def test_timed_out_handler_finishes_before_retry_starts(dead_letters, sleeps) -> None:
    """A slow first call must never run alongside its own retry."""
    guard = threading.Lock()
    active = [0]
    peak = [0]
    calls: list[str] = []

    def slow_once(event: Event) -> None:
        with guard:
            active[0] += 1
            peak[0] = max(peak[0], active[0])
            calls.append(event.id)
            first = len(calls) == 1
        try:
            if first:
                time.sleep(0.3)
        finally:
            with guard:
                active[0] -= 1

    dispatcher = _dispatcher(
        dead_letters,
        sleeps,
        max_attempts=3,
        handler_timeout_seconds=0.05,
        handler_stuck_grace_seconds=2,
    )
    dispatcher.subscribe("*", slow_once, name="slow-once")
    dispatcher.start()
    try:
        event = _event()
        dispatcher.dispatch(event)
        assert dispatcher.join(timeout=5) is True
    finally:
        dispatcher.stop()

    assert calls == [event.id, event.id]
    assert peak[0] == 1
    assert dispatcher.dead_letters() == ()
    assert dispatcher.stats().delivered == 1


def test_stuck_handler_dead_letters_without_retry(dead_letters, sleeps) -> None:
    release = threading.Event()
    calls: list[str] = []

    def stuck(event: Event) -> None:
        calls.append(event.id)
        release.wait(5)

    dispatcher = _dispatcher(
        dead_letters,
        sleeps,
        max_attempts=5,
        handler_timeout_seconds=0.05,
        handler_stuck_grace_seconds=0.05,
    )
    dispatcher.subscribe("*", stuck, name="stuck")
    dispatcher.start()
    try:
        dispatcher.dispatch(_event())
        assert dispatcher.join(timeout=5) is True
    finally:
        release.set()
        dispatcher.stop()

    (letter,) = dispatcher.dead_letters()
    assert letter.attempts == 1
    assert letter.last_error.startswith("HandlerStuckError")
    assert len(calls) == 1
    assert sleeps.delays == []


def test_failing_dead_letter_hook_is_logged_not_raised(dead_letters, sleeps, caplog) -> None:
    def always_fails(event: Event) -> None:
        raise RuntimeError("nope")

    def broken_hook(event: Event, letter: DeadLetter) -> None:
        raise RuntimeError("hook down")

    dispatcher = _dispatcher(dead_letters, sleeps, max_attempts=1)
    dispatcher.subscribe("*", always_fails, name="w", on_dead_letter=broken_hook)
    dispatcher.start()
    try:
        dispatcher.dispatch(_event())
        assert dispatcher.join(timeout=5) is True
    finally:
        dispatcher.stop()

    assert len(dead_letters.list_dead_letters()) == 1
    assert "Dead-letter hook failed" in caplog.text


def test_duplicate_subscription_names_are_rejected(dead_letters, sleeps) -> None:
    dispatcher = _dispatcher(dead_letters, sleeps)
    dispatcher.subscribe("*", lambda event: None, name="dup")
    with pytest.raises(ValueError):
        dispatcher.subscribe("entities.*", lambda event: None, name="dup")
