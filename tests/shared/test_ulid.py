"""Tests for shared ULID conversion and ordering semantics."""

from __future__ import annotations

import pytest

from packages.synap_shared.ids import (
    generate_ulid_bytes,
    generate_ulid_str,
    is_ulid_str,
    ulid_bytes_to_str,
    ulid_str_to_bytes,
)


def test_ulid_string_bytes_conversion_is_lossless() -> None:
    ulid_value = generate_ulid_str()

    assert ulid_bytes_to_str(ulid_str_to_bytes(ulid_value)) == ulid_value
    assert len(ulid_str_to_bytes(ulid_value)) == 16


def test_ulid_lexicographic_order_matches_big_endian_binary() -> None:
    """Sorting canonical strings must match sorting binary big-endian ULIDs."""
    values = [generate_ulid_bytes(timestamp_ms=1_700_000_000_000) for _ in range(300)]

    assert sorted(values) == sorted(values, key=ulid_bytes_to_str)


def test_ulids_generated_in_one_millisecond_sort_in_call_order() -> None:
    values = [generate_ulid_str(timestamp_ms=1_500_000_000_000) for _ in range(100)]

    assert values == sorted(values)
    assert len(set(values)) == 100


def test_ulid_from_an_earlier_clock_reading_still_sorts_after_previous() -> None:
    first = generate_ulid_str(timestamp_ms=1_600_000_000_000)
    second = generate_ulid_str(timestamp_ms=1_599_999_999_000)

    assert second > first


def test_is_ulid_str_rejects_non_canonical_values() -> None:
    assert is_ulid_str(generate_ulid_str())
    assert not is_ulid_str("01JB5B0000000000000000000U")
    assert not is_ulid_str("short")
    assert not is_ulid_str(42)


def test_ulid_str_to_bytes_rejects_overflow() -> None:
    with pytest.raises(ValueError, match="128-bit"):
        ulid_str_to_bytes("8ZZZZZZZZZZZZZZZZZZZZZZZZZ")
