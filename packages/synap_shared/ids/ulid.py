"""ULID generation and conversion helpers.

Event, proposal, and delivery identifiers are ULIDs in canonical 26-character
Crockford Base32 form, so lexical order follows creation time.
"""

from __future__ import annotations

import secrets
import threading
import time

_ULID_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_DECODE_TABLE = {char: index for index, char in enumerate(_ULID_ALPHABET)}
_MAX_ULID_INT = (1 << 128) - 1
_MAX_ENTROPY = (1 << 80) - 1

_monotonic_lock = threading.Lock()
_last_timestamp_ms = -1
_last_entropy = 0


def ulid_str_to_bytes(value: str) -> bytes:
    """Decode canonical 26-char ULID string into 16-byte big-endian form."""
    candidate = value.strip().upper()
    if len(candidate) != 26:
        raise ValueError("ULID string must be exactly 26 characters")

    number = 0
    for char in candidate:
        if char not in _DECODE_TABLE:
            raise ValueError(f"Invalid ULID character: {char!r}")
        number = (number << 5) | _DECODE_TABLE[char]

    if number > _MAX_ULID_INT:
        raise ValueError("ULID value exceeds 128-bit range")
    return number.to_bytes(16, byteorder="big", signed=False)


def ulid_bytes_to_str(value: bytes) -> str:
    """Encode 16-byte big-endian ULID into canonical 26-char Base32 string."""
    if len(value) != 16:
        raise ValueError("ULID bytes must be exactly 16 bytes")

    number = int.from_bytes(value, byteorder="big", signed=False)
    chars: list[str] = []
    for _ in range(26):
        number, remainder = divmod(number, 32)
        chars.append(_ULID_ALPHABET[remainder])
    return "".join(reversed(chars))


def generate_ulid_bytes(*, timestamp_ms: int | None = None) -> bytes:
    """Generate a new monotonic ULID as 16-byte big-endian binary.

    Within one millisecond the random component is incremented instead of
    redrawn, so identifiers generated by this process sort in call order.
    """
    global _last_timestamp_ms, _last_entropy

    ts_ms = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
    if ts_ms < 0 or ts_ms >= (1 << 48):
        raise ValueError("timestamp_ms out of ULID 48-bit range")

    with _monotonic_lock:
        if ts_ms <= _last_timestamp_ms and _last_entropy < _MAX_ENTROPY:
            ts_ms = _last_timestamp_ms
            entropy = _last_entropy + 1
        else:
            entropy = int.from_bytes(secrets.token_bytes(10), byteorder="big")
        _last_timestamp_ms = ts_ms
        _last_entropy = entropy

    number = (ts_ms << 80) | entropy
    return number.to_bytes(16, byteorder="big", signed=False)


def generate_ulid_str(*, timestamp_ms: int | None = None) -> str:
    """Generate a new ULID in canonical 26-char string format."""
    return ulid_bytes_to_str(generate_ulid_bytes(timestamp_ms=timestamp_ms))


def is_ulid_str(value: object) -> bool:
    """Return ``True`` when ``value`` is a canonical ULID string."""
    if not isinstance(value, str):
        return False
    try:
        ulid_str_to_bytes(value)
    except ValueError:
        return False
    return True
