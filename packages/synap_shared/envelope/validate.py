"""Validation helpers for envelope metadata."""

from __future__ import annotations

from datetime import UTC, datetime

from .meta import EnvelopeKind, EnvelopeMeta

_REQUIRED_FIELDS = ("envelope_id", "trace_id", "source", "principal")


def validate_meta(meta: EnvelopeMeta) -> None:
    """Validate required envelope metadata fields.

    Raises ``ValueError`` with a stable public message naming the first
    missing field.
    """
    for field_name in _REQUIRED_FIELDS:
        value = getattr(meta, field_name)
        if not isinstance(value, str) or value.strip() == "":
            raise ValueError(f"metadata.{field_name} is required")
    if meta.kind == EnvelopeKind.UNSPECIFIED:
        raise ValueError("metadata.kind must be specified")


def utc_now() -> datetime:
    """Return current UTC timestamp."""
    return datetime.now(UTC)
