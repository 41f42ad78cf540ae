"""Dispatcher data layer exports."""

from services.action.dispatcher.data.repository import (
    InMemoryDeadLetterRepository,
    PostgresDeadLetterRepository,
)
from services.action.dispatcher.data.runtime import DispatcherPostgresRuntime
from services.action.dispatcher.data.schema import dead_letters, metadata

__all__ = [
    "DispatcherPostgresRuntime",
    "InMemoryDeadLetterRepository",
    "PostgresDeadLetterRepository",
    "dead_letters",
    "metadata",
]
