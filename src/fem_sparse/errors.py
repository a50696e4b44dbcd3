# fem_sparse/src/fem_sparse/errors.py
"""Error types and backend-code classification for fem_sparse.

This module centralizes:
- the exception taxonomy raised by SparseMatrixBuilder, and
- the closed tables that translate numeric backend return codes into those
  exceptions.

Client code catches the exception classes below; it never needs to know the
backend's numeric codes.
"""

from __future__ import annotations

from typing import Final

from .backend import (
    CODE_IMPROPER_INDEX,
    CODE_INSERT_CAPACITY,
    CODE_OK,
    CODE_REOPEN_CAPACITY,
    ERROR_THRESHOLD,
)

_CAPACITY_HINT: Final[str] = (
    "The reserved non-zero capacity cannot be grown in place; clear() the "
    "matrix and rebuild it with a larger reserved_non_zeros."
)
_UNKNOWN_CODE_MSG: Final[str] = "Unknown error code returned"


class SparseMatrixError(Exception):
    """Base exception for fem_sparse errors.

    Attributes:
        location: Name of the operation that failed.
        code: Backend return code, or None when the error did not come from
            the backend.
    """

    def __init__(
        self, msg: str, *, location: str | None = None, code: int | None = None
    ) -> None:
        super().__init__(msg)
        self.location = location
        self.code = code


class InvalidDimensionsError(SparseMatrixError, ValueError):
    """Raised when order or capacity is non-positive where storage is required."""


class InvalidStateTransitionError(SparseMatrixError, RuntimeError):
    """Raised when an operation is called in the wrong storage phase."""


class InvalidIndexError(SparseMatrixError, IndexError):
    """Raised when a row or column lies outside [0, order)."""


class CapacityExceededError(SparseMatrixError, RuntimeError):
    """Raised when the reserved non-zero capacity is insufficient."""


class DimensionMismatchError(SparseMatrixError, ValueError):
    """Raised when operand sizes are incompatible."""


class BackendError(SparseMatrixError, RuntimeError):
    """Raised when the backend returns an error code with no known meaning."""


# Closed classification tables: backend code -> (exception, description)
_INSERT_ERRORS: Final[dict[int, tuple[type[SparseMatrixError], str]]] = {
    CODE_IMPROPER_INDEX: (InvalidIndexError, "Improper index of matrix"),
    CODE_INSERT_CAPACITY: (
        CapacityExceededError,
        "reserved_non_zeros is too small",
    ),
}

_REOPEN_ERRORS: Final[dict[int, tuple[type[SparseMatrixError], str]]] = {
    CODE_REOPEN_CAPACITY: (
        CapacityExceededError,
        "reserved_non_zeros is too small",
    ),
}


def classify_insert_code(code: int) -> tuple[type[SparseMatrixError], str] | None:
    """Classify a backend insert return code.

    Args:
        code: Code returned by the backend insert entry point.

    Returns:
        (exception class, description) for error codes, or None if the code
        signals success (including the informational "entry existed" code).
    """
    if code <= ERROR_THRESHOLD:
        return None
    return _INSERT_ERRORS.get(code, (BackendError, _UNKNOWN_CODE_MSG))


def classify_reopen_code(code: int) -> tuple[type[SparseMatrixError], str] | None:
    """Classify a backend reopen return code.

    Args:
        code: Code returned by the backend reopen entry point.

    Returns:
        (exception class, description) for error codes, or None on success.
    """
    if code <= CODE_OK:
        return None
    return _REOPEN_ERRORS.get(code, (BackendError, _UNKNOWN_CODE_MSG))


def raise_for_insert_code(
    code: int,
    *,
    location: str,
    insert_count: int | None = None,
    capacity: int | None = None,
) -> None:
    """Raise the classified exception for a failed backend insert.

    Args:
        code: Code returned by the backend insert entry point.
        location: Name of the calling operation (for example "set").
        insert_count: Entries created so far by the calling matrix.
        capacity: Reserved non-zero capacity of the calling matrix.

    Raises:
        SparseMatrixError: A subclass chosen by the classification table.
    """
    classified = classify_insert_code(code)
    if classified is None:
        return
    exc_type, description = classified

    parts = [f"{location}: Error: {description} (code {code})."]
    if exc_type is CapacityExceededError:
        if insert_count is not None and capacity is not None:
            parts.append(
                f"Entries created: {insert_count}; reserved_non_zeros: {capacity}."
            )
        parts.append(_CAPACITY_HINT)
    raise exc_type(" ".join(parts), location=location, code=code)


def raise_for_reopen_code(code: int, *, location: str) -> None:
    """Raise the classified exception for a failed backend reopen.

    Args:
        code: Code returned by the backend reopen entry point.
        location: Name of the calling operation.

    Raises:
        SparseMatrixError: A subclass chosen by the classification table.
    """
    classified = classify_reopen_code(code)
    if classified is None:
        return
    exc_type, description = classified

    msg = f"{location}: Error: {description} (code {code})."
    if exc_type is CapacityExceededError:
        msg = f"{msg} {_CAPACITY_HINT}"
    raise exc_type(msg, location=location, code=code)


def raise_invalid_dimensions(
    *, location: str, order: int, reserved_non_zeros: int
) -> None:
    """Raise a standardized InvalidDimensionsError.

    Args:
        location: Name of the calling operation.
        order: Current matrix order.
        reserved_non_zeros: Current reserved capacity.

    Raises:
        InvalidDimensionsError: Always.
    """
    msg = (
        f"{location}: order and reserved_non_zeros must both be positive to "
        f"allocate storage. Got order={order}, "
        f"reserved_non_zeros={reserved_non_zeros}."
    )
    raise InvalidDimensionsError(msg, location=location)


def raise_invalid_transition(*, location: str, state: object, expected: str) -> None:
    """Raise a standardized InvalidStateTransitionError.

    Args:
        location: Name of the calling operation.
        state: Current storage state.
        expected: Human-readable description of the required state.

    Raises:
        InvalidStateTransitionError: Always.
    """
    msg = f"{location}: requires storage {expected}; current state is {state}."
    raise InvalidStateTransitionError(msg, location=location)
