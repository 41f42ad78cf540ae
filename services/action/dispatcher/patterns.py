"""Event-type subscription patterns.

Supported forms, matched segment by segment against ``resource.action.stage``:

- ``*`` matches every event type.
- ``entities.create.requested`` matches exactly.
- ``entities.*`` matches every type whose leading segments are equal.
- ``*.*.validated`` uses ``*`` as a single-segment wildcard.
"""

from __future__ import annotations

from dataclasses import dataclass

_WILDCARD = "*"


@dataclass(frozen=True)
class EventPattern:
    """Compiled subscription pattern."""

    raw: str
    segments: tuple[str, ...]
    open_suffix: bool

    @classmethod
    def compile(cls, raw: str) -> "EventPattern":
        value = raw.strip()
        if value == "":
            raise ValueError("event pattern must not be empty")
        if value == _WILDCARD:
            return cls(raw=value, segments=(), open_suffix=True)
        segments = tuple(value.split("."))
        if any(segment == "" for segment in segments):
            raise ValueError(f"event pattern has an empty segment: {raw!r}")
        if len(segments) > 3:
            raise ValueError(f"event pattern has too many segments: {raw!r}")
        open_suffix = segments[-1] == _WILDCARD and len(segments) < 3
        if open_suffix:
            segments = segments[:-1]
        elif len(segments) < 3:
            raise ValueError(
                f"event pattern must have three segments or end in '.*': {raw!r}"
            )
        return cls(raw=value, segments=segments, open_suffix=open_suffix)

    def matches(self, event_type: str) -> bool:
        parts = event_type.split(".")
        if self.open_suffix:
            if len(parts) < len(self.segments):
                return False
        elif len(parts) != len(self.segments):
            return False
        return all(
            expected == _WILDCARD or expected == actual
            for expected, actual in zip(self.segments, parts)
        )

    def __str__(self) -> str:
        return self.raw
