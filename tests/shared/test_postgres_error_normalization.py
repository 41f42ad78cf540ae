"""Tests for Postgres exception normalization into the shared error taxonomy."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError

from packages.synap_shared.errors import ErrorCategory, codes
from resources.substrates.postgres.errors import is_unique_violation, normalize_postgres_error


class UniqueViolation(Exception):
    """Stand-in for the driver's unique-violation exception class."""


def test_unique_violation_maps_to_conflict() -> None:
    exc = IntegrityError("INSERT", {}, UniqueViolation("duplicate key value"))

    error = normalize_postgres_error(exc)

    assert is_unique_violation(exc)
    assert error.category is ErrorCategory.CONFLICT
    assert error.code == codes.ALREADY_EXISTS


def test_other_integrity_errors_are_not_unique_violations() -> None:
    exc = IntegrityError("INSERT", {}, Exception("null value in column"))

    assert not is_unique_violation(exc)
    assert normalize_postgres_error(exc).category is ErrorCategory.INTERNAL


def test_operational_errors_map_to_retryable_dependency() -> None:
    error = normalize_postgres_error(
        OperationalError("SELECT 1", {}, Exception("connection timeout"))
    )

    assert error.category is ErrorCategory.DEPENDENCY
    assert error.code == codes.DEPENDENCY_UNAVAILABLE
    assert error.retryable is True


def test_interface_errors_map_to_non_retryable_dependency() -> None:
    error = normalize_postgres_error(
        InterfaceError("SELECT 1", {}, Exception("connection closed"))
    )

    assert error.category is ErrorCategory.DEPENDENCY
    assert error.retryable is False


def test_unknown_exception_maps_to_internal() -> None:
    error = normalize_postgres_error(RuntimeError("boom"))

    assert error.category is ErrorCategory.INTERNAL
    assert error.code == codes.UNEXPECTED_EXCEPTION
    assert error.metadata == {"exception_type": "RuntimeError"}
