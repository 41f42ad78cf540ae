"""Tests for shared error factories and exception normalization."""

from __future__ import annotations

import pytest

from packages.synap_shared.errors import (
    ErrorCategory,
    codes,
    dependency_error,
    describe_exception,
    exception_to_error,
)


def test_dependency_errors_default_to_retryable() -> None:
    error = dependency_error("store down")

    assert error.category is ErrorCategory.DEPENDENCY
    assert error.retryable is True
    assert error.code == codes.DEPENDENCY_FAILURE


@pytest.mark.parametrize(
    ("exc", "code", "category"),
    [
        (ValueError("bad"), codes.INVALID_ARGUMENT, ErrorCategory.VALIDATION),
        (KeyError("missing"), codes.RESOURCE_NOT_FOUND, ErrorCategory.NOT_FOUND),
        (PermissionError("no"), codes.PERMISSION_DENIED, ErrorCategory.POLICY),
        (TimeoutError(), codes.DEPENDENCY_TIMEOUT, ErrorCategory.DEPENDENCY),
        (ConnectionError(), codes.DEPENDENCY_UNAVAILABLE, ErrorCategory.DEPENDENCY),
        (RuntimeError("boom"), codes.UNEXPECTED_EXCEPTION, ErrorCategory.INTERNAL),
    ],
)
def test_exception_to_error_maps_builtin_exceptions(
    exc: Exception, code: str, category: ErrorCategory
) -> None:
    error = exception_to_error(exc)

    assert error.code == code
    assert error.category is category
    assert error.metadata["exception_type"] == type(exc).__name__


def test_describe_exception_falls_back_to_type_name() -> None:
    assert describe_exception(TimeoutError()) == "TimeoutError"
    assert describe_exception(ValueError(" bad input ")) == "ValueError: bad input"
