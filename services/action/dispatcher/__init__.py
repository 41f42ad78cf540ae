"""Dispatcher package exports."""

from services.action.dispatcher.component import MANIFEST, SERVICE_COMPONENT_ID
from services.action.dispatcher.config import (
    DispatcherSettings,
    resolve_dispatcher_settings,
)
from services.action.dispatcher.data import (
    DispatcherPostgresRuntime,
    InMemoryDeadLetterRepository,
    PostgresDeadLetterRepository,
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
from services.action.dispatcher.implementation import (
    DefaultDispatcher,
    HandlerTimeoutError,
)
from services.action.dispatcher.interfaces import DeadLetterRepository
from services.action.dispatcher.patterns import EventPattern
from services.action.dispatcher.service import Dispatcher
from services.action.dispatcher.transport import InProcessDispatchTransport

__all__ = [
    "DeadLetter",
    "DeadLetterCallback",
    "DeadLetterRepository",
    "DefaultDispatcher",
    "Dispatcher",
    "DispatcherPostgresRuntime",
    "DispatcherSettings",
    "DispatcherStats",
    "DispatcherUnavailableError",
    "EventHandler",
    "EventPattern",
    "HandlerTimeoutError",
    "InMemoryDeadLetterRepository",
    "InProcessDispatchTransport",
    "MANIFEST",
    "NonRetryableHandlerError",
    "PostgresDeadLetterRepository",
    "SERVICE_COMPONENT_ID",
    "SubscriptionInfo",
    "resolve_dispatcher_settings",
]
