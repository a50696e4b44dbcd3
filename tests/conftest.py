"""Global pytest configuration and shared fixtures for fem_sparse."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pytest

from fem_sparse.backend import ItpackBackend
from fem_sparse.sparse_matrix import SparseMatrixBuilder

if TYPE_CHECKING:
    from fem_sparse.backend import CompressedRowBuffers


# -----------------------------------------------------------------------------
# Global markers registration safety (for local pytest runs)
# -----------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used by the test suite."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as exercising the O(n^2) matrix-matrix product",
    )


# -----------------------------------------------------------------------------
# Backend spy
# -----------------------------------------------------------------------------


@dataclass
class RecordingBackend(ItpackBackend):
    """ItpackBackend that records the name of every entry point called."""

    calls: list[str] = field(default_factory=list)

    def initialize_storage(
        self, order: int, capacity: int, buffers: CompressedRowBuffers
    ) -> None:
        """Record and delegate."""
        self.calls.append("initialize")
        super().initialize_storage(order, capacity, buffers)

    def finalize_storage(
        self, order: int, capacity: int, buffers: CompressedRowBuffers
    ) -> None:
        """Record and delegate."""
        self.calls.append("finalize")
        super().finalize_storage(order, capacity, buffers)

    def reopen_storage(
        self,
        order: int,
        capacity: int,
        buffers: CompressedRowBuffers,
        level: int,
    ) -> int:
        """Record and delegate."""
        self.calls.append("reopen")
        return super().reopen_storage(order, capacity, buffers, level)

    def insert_entry(  # noqa: PLR0913
        self,
        order: int,
        capacity: int,
        buffers: CompressedRowBuffers,
        row: int,
        col: int,
        value: float,
        mode: int,
        level: int,
    ) -> int:
        """Record and delegate."""
        self.calls.append("insert")
        return super().insert_entry(
            order, capacity, buffers, row, col, value, mode, level
        )


@pytest.fixture
def recording_backend() -> RecordingBackend:
    """Return a fresh recording backend."""
    return RecordingBackend()


@pytest.fixture
def identity3() -> SparseMatrixBuilder:
    """Return a 3x3 identity matrix built with set()."""
    mat = SparseMatrixBuilder(3, 9)
    for i in range(3):
        mat.set(i, i, 1.0)
    return mat
