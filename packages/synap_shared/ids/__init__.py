"""Shared ULID primitives for identifiers and primary keys."""

from packages.synap_shared.ids.sqlalchemy import (
    ULID_STR_LENGTH,
    ulid_column,
    ulid_primary_key_column,
)
from packages.synap_shared.ids.ulid import (
    generate_ulid_bytes,
    generate_ulid_str,
    is_ulid_str,
    ulid_bytes_to_str,
    ulid_str_to_bytes,
)

__all__ = [
    "ULID_STR_LENGTH",
    "generate_ulid_bytes",
    "generate_ulid_str",
    "is_ulid_str",
    "ulid_bytes_to_str",
    "ulid_column",
    "ulid_primary_key_column",
    "ulid_str_to_bytes",
]
