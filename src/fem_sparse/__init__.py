"""fem_sparse incremental sparse-matrix assembly package."""

from __future__ import annotations

from .backend import CompressedRowBackend, CompressedRowBuffers, ItpackBackend
from .config import SparseMatrixConfig, reserve_for_bandwidth
from .errors import (
    BackendError,
    CapacityExceededError,
    DimensionMismatchError,
    InvalidDimensionsError,
    InvalidIndexError,
    InvalidStateTransitionError,
    SparseMatrixError,
)
from .sparse_matrix import InsertMode, SparseMatrixBuilder, StorageState

__all__ = [
    "BackendError",
    "CapacityExceededError",
    "CompressedRowBackend",
    "CompressedRowBuffers",
    "DimensionMismatchError",
    "InsertMode",
    "InvalidDimensionsError",
    "InvalidIndexError",
    "InvalidStateTransitionError",
    "ItpackBackend",
    "SparseMatrixBuilder",
    "SparseMatrixConfig",
    "SparseMatrixError",
    "StorageState",
    "reserve_for_bandwidth",
]

__version__ = "0.1.0"
