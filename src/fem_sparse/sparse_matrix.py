# fem_sparse/src/fem_sparse/sparse_matrix.py
"""Incremental sparse-matrix builder with a two-phase storage protocol.

SparseMatrixBuilder assembles a square matrix entry by entry (``set`` / ``add``)
into buffers of fixed reserved capacity, and exposes it in compressed-row form
for queries (``get``, ``multiply_vector``, ``multiply_matrix``).

Storage phases:
    EMPTY      no buffers; the builder behaves as the zero matrix.
    BUILDING   buffers allocated; entries may be inserted; row offsets are not
               meaningful.
    FINALIZED  buffers compacted into row-sorted compressed-row form; queries
               read them directly.

Transitions are performed implicitly where needed: mutations reopen a
finalized matrix, queries finalize a building one. Explicit ``finalize()`` /
``unfinalize()`` calls in the wrong phase raise InvalidStateTransitionError.

Indices are 0-based at this API; the backend stores 1-based indices.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

import numpy as np
from scipy.sparse import csr_matrix, issparse

from .backend import (
    CODE_OK,
    LEVEL_SILENT,
    MODE_ACCUMULATE,
    MODE_REPLACE,
    CompressedRowBuffers,
    ItpackBackend,
)
from .errors import (
    DimensionMismatchError,
    InvalidDimensionsError,
    InvalidIndexError,
    raise_for_insert_code,
    raise_for_reopen_code,
    raise_invalid_dimensions,
    raise_invalid_transition,
)

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from .backend import CompressedRowBackend
    from .config import SparseMatrixConfig


# Error / message constants -------------------------------------------------

_NEGATIVE_DIMENSION_ERROR = "{name} must be non-negative; got {value}"
_INDEX_OOB_ERROR = "get: index ({row}, {col}) out of range for order {order}"
_VECTOR_SHAPE_ERROR = (
    "multiply_vector: vector shape {shape} does not match matrix order {order}"
)
_MATRIX_ORDER_ERROR = (
    "multiply_matrix: right matrix order {right} does not match order {order}"
)
_RESULT_ORDER_ERROR = (
    "multiply_matrix: result matrix order {result} does not match order {order}"
)
_RESULT_ALIAS_ERROR = (
    "multiply_matrix: result must be a separate matrix, not one of the operands"
)
_COMPRESSED_LENGTH_ERROR = (
    "set_compressed_form: column_indices length {ja} does not match values "
    "length {a}"
)
_COMPRESSED_OFFSETS_ERROR = (
    "set_compressed_form: row_offsets must hold at least 2 entries, start at 1, "
    "be non-decreasing and end within the {capacity} supplied slots"
)
_COMPRESSED_COLUMNS_ERROR = (
    "set_compressed_form: stored column indices must lie in [1, {order}]"
)
_CSR_SQUARE_ERROR = "from_csr_matrix: matrix must be square; got shape {shape}"
_CSR_RESERVE_ERROR = (
    "from_csr_matrix: reserved_non_zeros {reserve} is smaller than nnz {nnz}"
)


class StorageState(Enum):
    """Storage phase of a SparseMatrixBuilder."""

    EMPTY = "empty"
    BUILDING = "building"
    FINALIZED = "finalized"


class InsertMode(Enum):
    """How an insert treats an entry that already exists.

    The values are the backend mode codes.
    """

    REPLACE = MODE_REPLACE
    ACCUMULATE = MODE_ACCUMULATE


class SparseMatrixBuilder:
    """Square sparse matrix assembled incrementally in compressed-row storage."""

    def __init__(
        self,
        order: int = 0,
        reserved_non_zeros: int = 0,
        *,
        level: int = LEVEL_SILENT,
        backend: CompressedRowBackend | None = None,
    ) -> None:
        """
        Initialize SparseMatrixBuilder.

        Buffers are not allocated here; they are created by ``initialize()`` or
        lazily by the first ``set`` / ``add``.

        Args:
            order: Number of rows/columns (0 if not yet known).
            reserved_non_zeros: Maximum number of stored entries (0 if not yet
                known).
            level: Backend diagnostic level; -1 is silent, 0 reports errors,
                1 also reports updates of existing entries.
            backend: Storage backend; defaults to ItpackBackend.

        Raises:
            InvalidDimensionsError: if order or reserved_non_zeros is negative.
        """
        self._backend: CompressedRowBackend = (
            backend if backend is not None else ItpackBackend()
        )
        self._order = _check_non_negative("order", order)
        self._reserved_non_zeros = _check_non_negative(
            "reserved_non_zeros", reserved_non_zeros
        )
        self.level = int(level)
        self._insert_mode = InsertMode.ACCUMULATE
        self._insert_count = 0
        self._buffers: CompressedRowBuffers | None = None
        self._state = StorageState.EMPTY

    @classmethod
    def from_config(
        cls,
        config: SparseMatrixConfig,
        *,
        backend: CompressedRowBackend | None = None,
    ) -> SparseMatrixBuilder:
        """
        Build an empty matrix from a configuration model.

        Args:
            config: Validated configuration.
            backend: Optional storage backend override.

        Returns:
            New SparseMatrixBuilder in the EMPTY state.
        """
        return cls(
            config.order,
            config.reserved_non_zeros,
            level=config.level,
            backend=backend,
        )

    # ------------------------------------------------------------------
    # Dimensions and state
    # ------------------------------------------------------------------

    @property
    def order(self) -> int:
        """Number of rows/columns."""
        return self._order

    @order.setter
    def order(self, value: int) -> None:
        self._require_empty("order")
        self._order = _check_non_negative("order", value)

    @property
    def reserved_non_zeros(self) -> int:
        """Maximum number of entries the storage can hold."""
        return self._reserved_non_zeros

    @reserved_non_zeros.setter
    def reserved_non_zeros(self, value: int) -> None:
        self._require_empty("reserved_non_zeros")
        self._reserved_non_zeros = _check_non_negative("reserved_non_zeros", value)

    @property
    def state(self) -> StorageState:
        """Current storage phase."""
        return self._state

    @property
    def is_initialized(self) -> bool:
        """True if storage buffers are allocated."""
        return self._state is not StorageState.EMPTY

    @property
    def is_finalized(self) -> bool:
        """True if storage is in compact compressed-row form."""
        return self._state is StorageState.FINALIZED

    @property
    def insert_mode(self) -> InsertMode:
        """Mode used by the most recent insert."""
        return self._insert_mode

    @property
    def insert_count(self) -> int:
        """Number of new entries created by inserts since the last clear()."""
        return self._insert_count

    @property
    def nnz(self) -> int:
        """Number of stored entries (0 without storage)."""
        if self._buffers is None:
            return 0
        if self._state is StorageState.FINALIZED:
            return int(self._buffers.ia[self._order]) - 1
        return int(self._buffers.ia[self._order])

    def _require_empty(self, name: str) -> None:
        if self._state is not StorageState.EMPTY:
            raise_invalid_transition(
                location=f"set {name}",
                state=self._state.value,
                expected="to be empty (call clear() first)",
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Allocate zeroed storage and enter the BUILDING state.

        Any previously held buffers are dropped first.

        Raises:
            InvalidDimensionsError: if order or reserved_non_zeros is not
                positive.
        """
        if self._order <= 0 or self._reserved_non_zeros <= 0:
            raise_invalid_dimensions(
                location="initialize",
                order=self._order,
                reserved_non_zeros=self._reserved_non_zeros,
            )

        self._buffers = None
        buffers = CompressedRowBuffers.allocate(self._order, self._reserved_non_zeros)
        self._backend.initialize_storage(
            self._order, self._reserved_non_zeros, buffers
        )
        self._buffers = buffers
        self._state = StorageState.BUILDING

    def clear(self) -> None:
        """Drop all storage and reset every setting to its default."""
        self._buffers = None
        self._state = StorageState.EMPTY
        self._order = 0
        self._reserved_non_zeros = 0
        self.level = LEVEL_SILENT
        self._insert_mode = InsertMode.ACCUMULATE
        self._insert_count = 0

    def finalize(self) -> None:
        """
        Compact storage into compressed-row form.

        Raises:
            InvalidStateTransitionError: if storage is not in the BUILDING state.
        """
        if self._state is not StorageState.BUILDING:
            raise_invalid_transition(
                location="finalize",
                state=self._state.value,
                expected="building",
            )
        buffers = self._storage()
        self._backend.finalize_storage(self._order, self._reserved_non_zeros, buffers)
        self._state = StorageState.FINALIZED

    def unfinalize(self) -> None:
        """
        Reopen finalized storage for further inserts.

        Raises:
            InvalidStateTransitionError: if storage is not FINALIZED.
            CapacityExceededError: if the backend cannot reopen the stored
                structure within reserved_non_zeros; the matrix must then be
                rebuilt with a larger reserve.
        """
        if self._state is not StorageState.FINALIZED:
            raise_invalid_transition(
                location="unfinalize",
                state=self._state.value,
                expected="finalized",
            )
        buffers = self._storage()
        code = self._backend.reopen_storage(
            self._order, self._reserved_non_zeros, buffers, self.level
        )
        raise_for_reopen_code(code, location="unfinalize")
        self._state = StorageState.BUILDING

    def _storage(self) -> CompressedRowBuffers:
        buffers = self._buffers
        if buffers is None:
            msg = "Internal error: storage buffers missing for non-empty state"
            raise RuntimeError(msg)
        return buffers

    def _ensure_building(self, location: str) -> CompressedRowBuffers:
        if self._state is StorageState.EMPTY:
            if self._order <= 0 or self._reserved_non_zeros <= 0:
                raise_invalid_dimensions(
                    location=location,
                    order=self._order,
                    reserved_non_zeros=self._reserved_non_zeros,
                )
            self.initialize()
        elif self._state is StorageState.FINALIZED:
            self.unfinalize()
        return self._storage()

    def _ensure_finalized(self) -> CompressedRowBuffers | None:
        if self._state is StorageState.EMPTY:
            return None
        if self._state is StorageState.BUILDING:
            self.finalize()
        return self._storage()

    # ------------------------------------------------------------------
    # Element mutation
    # ------------------------------------------------------------------

    def _insert(self, row: int, col: int, value: float, mode: InsertMode) -> None:
        location = "set" if mode is InsertMode.REPLACE else "add"
        buffers = self._ensure_building(location)
        self._insert_mode = mode
        code = self._backend.insert_entry(
            self._order,
            self._reserved_non_zeros,
            buffers,
            int(row) + 1,
            int(col) + 1,
            float(value),
            mode.value,
            self.level,
        )
        if code == CODE_OK:
            self._insert_count += 1
        raise_for_insert_code(
            code,
            location=location,
            insert_count=self._insert_count,
            capacity=self._reserved_non_zeros,
        )

    def set(self, row: int, col: int, value: float) -> None:
        """
        Write an entry, replacing any existing value.

        Args:
            row: 0-based row index.
            col: 0-based column index.
            value: New value.

        Raises:
            InvalidDimensionsError: if storage must be allocated but the
                dimensions are not positive.
            InvalidIndexError: if (row, col) is outside the matrix.
            CapacityExceededError: if no slot is left for a new entry, or a
                finalized matrix cannot be reopened.
        """
        self._insert(row, col, value, InsertMode.REPLACE)

    def add(self, row: int, col: int, value: float) -> None:
        """
        Accumulate a value into an entry.

        Adding exactly zero is a no-op: no storage is allocated and no explicit
        zero entry is created.

        Args:
            row: 0-based row index.
            col: 0-based column index.
            value: Value to add.

        Raises:
            InvalidDimensionsError: if storage must be allocated but the
                dimensions are not positive.
            InvalidIndexError: if (row, col) is outside the matrix.
            CapacityExceededError: if no slot is left for a new entry, or a
                finalized matrix cannot be reopened.
        """
        if value == 0:
            return
        self._insert(row, col, value, InsertMode.ACCUMULATE)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, row: int, col: int) -> float:
        """
        Read an entry.

        A matrix without storage reads as zero everywhere. Otherwise the matrix
        is finalized first. If a row held duplicate columns, the last matching
        slot would win; the default backend never stores duplicates.

        Args:
            row: 0-based row index.
            col: 0-based column index.

        Raises:
            InvalidIndexError: if (row, col) is outside the matrix.

        Returns:
            Stored value, or 0.0 if the entry is not stored.
        """
        buffers = self._ensure_finalized()
        if buffers is None:
            return 0.0

        row = int(row)
        col = int(col)
        if not (0 <= row < self._order and 0 <= col < self._order):
            raise InvalidIndexError(
                _INDEX_OOB_ERROR.format(row=row, col=col, order=self._order),
                location="get",
            )

        lower = int(buffers.ia[row]) - 1
        upper = int(buffers.ia[row + 1]) - 1
        hits = np.flatnonzero(buffers.ja[lower:upper] == col + 1)
        if hits.size == 0:
            return 0.0
        return float(buffers.a[lower + int(hits[-1])])

    def get_row_offsets(self) -> NDArray[np.int64] | None:
        """Return a read-only view of the 1-based row offsets (None if empty)."""
        buffers = self._ensure_finalized()
        return None if buffers is None else _readonly(buffers.ia)

    def get_column_indices(self) -> NDArray[np.int64] | None:
        """Return a read-only view of the 1-based column indices (None if empty)."""
        buffers = self._ensure_finalized()
        return None if buffers is None else _readonly(buffers.ja)

    def get_values(self) -> NDArray[np.float64] | None:
        """Return a read-only view of the stored values (None if empty)."""
        buffers = self._ensure_finalized()
        return None if buffers is None else _readonly(buffers.a)

    def get_compressed_form(
        self,
    ) -> tuple[NDArray[np.int64], NDArray[np.int64], NDArray[np.float64]] | None:
        """
        Return read-only views of (row_offsets, column_indices, values).

        The views alias the matrix storage and are invalidated by any later
        set, add, clear, initialize or set_compressed_form call.

        Returns:
            Tuple of views in finalized compressed-row form, or None if the
            matrix has no storage.
        """
        buffers = self._ensure_finalized()
        if buffers is None:
            return None
        return _readonly(buffers.ia), _readonly(buffers.ja), _readonly(buffers.a)

    def set_compressed_form(
        self,
        row_offsets: ArrayLike,
        column_indices: ArrayLike,
        values: ArrayLike,
    ) -> None:
        """
        Adopt a matrix assembled elsewhere, in finalized form.

        The inputs are copied into storage owned by this matrix. The order
        becomes ``len(row_offsets) - 1`` and the reserved capacity
        ``len(column_indices)``. Column indices within each row are expected
        sorted and unique. The insert counter and insert mode are reset
        as by ``clear()``.

        Args:
            row_offsets: 1-based row boundaries, length order + 1.
            column_indices: 1-based column index per slot.
            values: Value per slot.

        Raises:
            DimensionMismatchError: if column_indices and values differ in
                length.
            InvalidDimensionsError: if the arrays do not describe a valid
                compressed-row matrix.
        """
        ia = np.array(row_offsets, dtype=np.int64, copy=True).ravel()
        ja = np.array(column_indices, dtype=np.int64, copy=True).ravel()
        a = np.array(values, dtype=np.float64, copy=True).ravel()

        if ja.size != a.size:
            raise DimensionMismatchError(
                _COMPRESSED_LENGTH_ERROR.format(ja=ja.size, a=a.size),
                location="set_compressed_form",
            )

        capacity = int(ja.size)
        if (
            ia.size < 2  # noqa: PLR2004
            or ia[0] != 1
            or np.any(np.diff(ia) < 0)
            or ia[-1] - 1 > capacity
        ):
            raise InvalidDimensionsError(
                _COMPRESSED_OFFSETS_ERROR.format(capacity=capacity),
                location="set_compressed_form",
            )

        order = int(ia.size) - 1
        used = int(ia[-1]) - 1
        stored = ja[:used]
        if stored.size and (stored.min() < 1 or stored.max() > order):
            raise InvalidDimensionsError(
                _COMPRESSED_COLUMNS_ERROR.format(order=order),
                location="set_compressed_form",
            )

        self._buffers = CompressedRowBuffers(
            ia=ia,
            ja=ja,
            a=a,
            iwork=np.zeros(capacity, dtype=np.int64),
        )
        self._order = order
        self._reserved_non_zeros = capacity
        self._state = StorageState.FINALIZED
        self._insert_mode = InsertMode.ACCUMULATE
        self._insert_count = 0

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def multiply_vector(self, vector: ArrayLike) -> NDArray[np.float64]:
        """
        Compute the matrix-vector product ``A @ vector``.

        Args:
            vector: 1D array of length order.

        Raises:
            DimensionMismatchError: if vector is not 1D of length order.

        Returns:
            New 1D float array of length order.
        """
        x = np.asarray(vector, dtype=np.float64)
        if x.ndim != 1 or x.shape[0] != self._order:
            raise DimensionMismatchError(
                _VECTOR_SHAPE_ERROR.format(shape=x.shape, order=self._order),
                location="multiply_vector",
            )

        buffers = self._ensure_finalized()
        if buffers is None:
            return np.zeros(self._order, dtype=np.float64)

        used = int(buffers.ia[self._order]) - 1
        rows = np.repeat(np.arange(self._order), np.diff(buffers.ia))
        products = buffers.a[:used] * x[buffers.ja[:used] - 1]
        return np.bincount(rows, weights=products, minlength=self._order).astype(
            np.float64, copy=False
        )

    def multiply_matrix(
        self,
        right: SparseMatrixBuilder,
        result: SparseMatrixBuilder | None = None,
    ) -> SparseMatrixBuilder:
        """
        Compute the matrix product ``A @ right`` into a builder.

        Each row of this matrix is combined with every column of ``right``
        through ``right.get``; only non-zero sums are written to ``result``
        with ``set``. Cost is O(order^2 * average row nnz), which suits the
        moderate sizes this builder targets.

        Args:
            right: Right operand of the same order.
            result: Destination matrix; a new one with capacity order^2 is
                created when omitted. Must be distinct from this matrix and
                right. Existing entries at positions with a zero product are
                left untouched.

        Raises:
            DimensionMismatchError: if right (or result) has a different order.
                Also raised if result is this matrix or right.

        Returns:
            The destination matrix.
        """
        if result is self or result is right:
            raise DimensionMismatchError(
                _RESULT_ALIAS_ERROR, location="multiply_matrix"
            )
        n = self._order
        if right.order != n:
            raise DimensionMismatchError(
                _MATRIX_ORDER_ERROR.format(right=right.order, order=n),
                location="multiply_matrix",
            )
        if result is None:
            result = SparseMatrixBuilder(n, n * n, level=self.level)
        elif result.order != n:
            raise DimensionMismatchError(
                _RESULT_ORDER_ERROR.format(result=result.order, order=n),
                location="multiply_matrix",
            )

        buffers = self._ensure_finalized()
        if buffers is None:
            return result

        for i in range(n):
            lower = int(buffers.ia[i]) - 1
            upper = int(buffers.ia[i + 1]) - 1
            if lower == upper:
                continue
            cols = buffers.ja[lower:upper] - 1
            vals = buffers.a[lower:upper]
            for j in range(n):
                summed = 0.0
                for value, col in zip(vals, cols, strict=True):
                    summed += float(value) * right.get(int(col), j)
                if summed != 0.0:
                    result.set(i, j, summed)
        return result

    # ------------------------------------------------------------------
    # Interop and diagnostics
    # ------------------------------------------------------------------

    def to_csr_matrix(self) -> csr_matrix:
        """
        Return a SciPy CSR copy of the matrix.

        Returns:
            csr_matrix of shape (order, order) with 0-based indices.
        """
        n = self._order
        buffers = self._ensure_finalized()
        if buffers is None:
            return csr_matrix((n, n), dtype=np.float64)

        used = int(buffers.ia[n]) - 1
        return csr_matrix(
            (
                buffers.a[:used].copy(),
                buffers.ja[:used] - 1,
                buffers.ia - 1,
            ),
            shape=(n, n),
        )

    @classmethod
    def from_csr_matrix(
        cls,
        matrix: Any,
        reserved_non_zeros: int | None = None,
        *,
        level: int = LEVEL_SILENT,
    ) -> SparseMatrixBuilder:
        """
        Wrap a SciPy sparse (or dense) square matrix.

        Args:
            matrix: Square scipy.sparse matrix or array-like.
            reserved_non_zeros: Capacity to reserve; defaults to the number of
                stored entries and may not be smaller.
            level: Backend diagnostic level.

        Raises:
            DimensionMismatchError: if matrix is not square.
            InvalidDimensionsError: if reserved_non_zeros is below nnz, or the
                matrix has no rows.

        Returns:
            New SparseMatrixBuilder in the FINALIZED state.
        """
        csr = csr_matrix(matrix if issparse(matrix) else np.asarray(matrix))
        if csr.shape[0] != csr.shape[1]:
            raise DimensionMismatchError(
                _CSR_SQUARE_ERROR.format(shape=csr.shape),
                location="from_csr_matrix",
            )
        csr.sum_duplicates()
        csr.sort_indices()

        nnz = int(csr.nnz)
        reserve = nnz if reserved_non_zeros is None else int(reserved_non_zeros)
        if reserve < nnz:
            raise InvalidDimensionsError(
                _CSR_RESERVE_ERROR.format(reserve=reserve, nnz=nnz),
                location="from_csr_matrix",
            )

        ja = np.zeros(reserve, dtype=np.int64)
        a = np.zeros(reserve, dtype=np.float64)
        ja[:nnz] = csr.indices + 1
        a[:nnz] = csr.data

        out = cls(level=level)
        out.set_compressed_form(csr.indptr.astype(np.int64) + 1, ja, a)
        return out

    def toarray(self) -> NDArray[np.float64]:
        """Return a dense copy of the matrix."""
        return np.asarray(self.to_csr_matrix().toarray(), dtype=np.float64)

    def format_compressed_form(self) -> str:
        """
        Render the compressed-row buffers as text, one buffer per line.

        Returns:
            Three lines (row offsets, column indices, values), or an empty
            string if the matrix has no storage.
        """
        form = self.get_compressed_form()
        if form is None:
            return ""
        return "\n".join(" ".join(str(x) for x in buf.tolist()) for buf in form)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(order={self._order}, "
            f"reserved_non_zeros={self._reserved_non_zeros}, "
            f"state={self._state.value}, nnz={self.nnz})"
        )


def _check_non_negative(name: str, value: int) -> int:
    value = int(value)
    if value < 0:
        raise InvalidDimensionsError(
            _NEGATIVE_DIMENSION_ERROR.format(name=name, value=value),
            location=name,
        )
    return value


def _readonly(arr: np.ndarray) -> np.ndarray:
    view = arr.view()
    view.flags.writeable = False
    return view
