"""Typed event taxonomy built from a declared table list.

Every event type is ``{resource}.{action}.{stage}``. The set of valid types is
the cross product of declared tables, actions and the fixed stage list, built
once at startup. ``completed`` is accepted on input as an alias of
``validated`` and never stored.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Iterator

from pydantic import BaseModel, ConfigDict

DEFAULT_TABLES: tuple[str, ...] = (
    "entities",
    "documents",
    "views",
    "relations",
    "packages",
    "workspaces",
)
DEFAULT_ACTIONS: tuple[str, ...] = ("create", "update", "delete")
COMPLETED_ALIAS = "completed"


class EventStage(str, Enum):
    """Pipeline stage carried in the last segment of an event type."""

    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    VALIDATED = "validated"
    FAILED = "failed"

    @property
    def outcome_group(self) -> str | None:
        """Group of mutually exclusive outcomes this stage belongs to.

        One causing event gets at most one event per group: one decision
        (``approved``/``rejected``) and one completion (``validated``/``failed``).
        """
        return _OUTCOME_GROUPS.get(self)


_OUTCOME_GROUPS: dict[EventStage, str] = {
    EventStage.APPROVED: "decision",
    EventStage.REJECTED: "decision",
    EventStage.VALIDATED: "completion",
    EventStage.FAILED: "completion",
}


class UnknownEventTypeError(ValueError):
    """Raised when an event type is not part of the declared taxonomy."""


class EventType(BaseModel):
    """Parsed, immutable ``{resource}.{action}.{stage}`` event type."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    resource: str
    action: str
    stage: EventStage

    def __str__(self) -> str:
        return f"{self.resource}.{self.action}.{self.stage.value}"

    def with_stage(self, stage: EventStage) -> "EventType":
        """Return the sibling type for the same resource and action."""
        return EventType(resource=self.resource, action=self.action, stage=stage)

    @classmethod
    def parse(cls, value: str) -> "EventType":
        """Parse a stored (already canonical) type string."""
        resource, action, stage = _split(value)
        try:
            parsed_stage = EventStage(stage)
        except ValueError as exc:
            raise UnknownEventTypeError(f"unknown event stage: {value}") from exc
        return cls(resource=resource, action=action, stage=parsed_stage)


class EventTaxonomy:
    """Registry of every valid event type for the declared tables."""

    def __init__(
        self,
        *,
        tables: Iterable[str] = DEFAULT_TABLES,
        actions: Iterable[str] = DEFAULT_ACTIONS,
    ) -> None:
        self._tables = tuple(dict.fromkeys(tables))
        self._actions = tuple(dict.fromkeys(actions))
        if len(self._tables) == 0 or len(self._actions) == 0:
            raise ValueError("taxonomy requires at least one table and one action")
        for name in (*self._tables, *self._actions):
            if name == "" or "." in name or name == "*":
                raise ValueError(f"invalid taxonomy segment: {name!r}")
        self._types = frozenset(
            EventType(resource=table, action=action, stage=stage)
            for table in self._tables
            for action in self._actions
            for stage in EventStage
        )

    @property
    def tables(self) -> tuple[str, ...]:
        return self._tables

    @property
    def actions(self) -> tuple[str, ...]:
        return self._actions

    def parse(self, value: str) -> EventType:
        """Parse and validate one type string, canonicalizing ``completed``."""
        resource, action, stage = _split(value)
        if stage == COMPLETED_ALIAS:
            stage = EventStage.VALIDATED.value
        if resource not in self._tables:
            raise UnknownEventTypeError(f"unknown event resource: {value}")
        if action not in self._actions:
            raise UnknownEventTypeError(f"unknown event action: {value}")
        parsed = EventType.parse(f"{resource}.{action}.{stage}")
        if parsed not in self._types:
            raise UnknownEventTypeError(f"unknown event type: {value}")
        return parsed

    def __iter__(self) -> Iterator[EventType]:
        return iter(sorted(self._types, key=str))

    def __len__(self) -> int:
        return len(self._types)


def _split(value: str) -> tuple[str, str, str]:
    parts = value.strip().split(".")
    if len(parts) != 3 or any(part == "" for part in parts):
        raise UnknownEventTypeError(
            f"event type must be '<resource>.<action>.<stage>': {value!r}"
        )
    return parts[0], parts[1], parts[2]
