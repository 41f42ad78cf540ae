"""SQLAlchemy helpers for ULID-backed primary keys."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, String

ULID_STR_LENGTH = 26


def ulid_primary_key_column(name: str = "id") -> Column[str]:
    """Return a standard ULID primary-key column stored in canonical text form."""
    return Column(
        name,
        String(ULID_STR_LENGTH),
        CheckConstraint(f"length({name}) = {ULID_STR_LENGTH}", name=f"ck_{name}_ulid_26"),
        primary_key=True,
        nullable=False,
    )


def ulid_column(name: str, *, nullable: bool = False, index: bool = False) -> Column[str]:
    """Return a non-key ULID reference column."""
    return Column(name, String(ULID_STR_LENGTH), nullable=nullable, index=index)
