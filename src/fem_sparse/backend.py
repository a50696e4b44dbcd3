# fem_sparse/src/fem_sparse/backend.py
"""Compressed-row storage backend for the sparse matrix builder.

The builder never touches its storage layout directly; it drives a backend
through four entry points that follow the ITPACK sparse-storage call contract:

- ``initialize_storage``: zero the buffers and prepare the building form.
- ``insert_entry``: write or accumulate a single (1-based) entry.
- ``finalize_storage``: compact the entries into row-sorted compressed-row form.
- ``reopen_storage``: turn the compact form back into the building form.

Buffers:
    ia:    int array, length ``order + 1``. In compact form, 1-based row
           boundaries (row i occupies slots ``[ia[i]-1, ia[i+1]-1)``).
    ja:    int array, length ``capacity``. 1-based column of each slot.
    a:     float array, length ``capacity``. Value of each slot.
    iwork: int array, length ``capacity``. Scratch space.

Building form (ItpackBackend):
    The first ``ia[order]`` slots are in use. Slot k holds row ``iwork[k]``,
    column ``ja[k]`` and value ``a[k]`` (all 1-based indices); ``ia[:order]``
    is zero. Entries are unique per (row, column).

Return codes follow ITPACK numbering: values above ``ERROR_THRESHOLD`` are
errors. Classification into exceptions is done by ``fem_sparse.errors``.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Final, Protocol

import numpy as np
from numpy.typing import NDArray

# =============================================================================
# Backend return codes
# =============================================================================

CODE_OK: Final[int] = 0
CODE_ENTRY_EXISTS: Final[int] = 700
CODE_IMPROPER_INDEX: Final[int] = 701
CODE_INSERT_CAPACITY: Final[int] = 702
CODE_REOPEN_CAPACITY: Final[int] = 703

ERROR_THRESHOLD: Final[int] = 700

MODE_REPLACE: Final[int] = 0
MODE_ACCUMULATE: Final[int] = 1

# Diagnostic levels
LEVEL_SILENT: Final[int] = -1
LEVEL_ERRORS: Final[int] = 0
LEVEL_WARNINGS: Final[int] = 1

_ENTRY_EXISTS_MSG = "Entry ({row}, {col}) already set; value {action}"
_IMPROPER_INDEX_MSG = "Improper index ({row}, {col}) for matrix of order {order}"
_INSERT_CAPACITY_MSG = "No free slot for entry ({row}, {col}); capacity {capacity}"
_REOPEN_CAPACITY_MSG = (
    "Cannot reopen storage: compact structure does not fit capacity {capacity}"
)
_UNKNOWN_MODE_MSG = "Unknown insert mode: {mode}"

IndexArray = NDArray[np.int64]
ValueArray = NDArray[np.float64]


# =============================================================================
# Buffers
# =============================================================================


@dataclass(slots=True)
class CompressedRowBuffers:
    """The four parallel buffers of a compressed-row matrix.

    Attributes:
        ia: Row boundary buffer, length order + 1.
        ja: Column index buffer, length capacity.
        a: Value buffer, length capacity.
        iwork: Backend workspace buffer, length capacity.
    """

    ia: IndexArray
    ja: IndexArray
    a: ValueArray
    iwork: IndexArray

    @classmethod
    def allocate(cls, order: int, capacity: int) -> CompressedRowBuffers:
        """Allocate zero-filled buffers for a matrix of the given size.

        Args:
            order: Number of rows/columns.
            capacity: Reserved number of non-zero slots.

        Returns:
            Freshly allocated buffers.
        """
        return cls(
            ia=np.zeros(order + 1, dtype=np.int64),
            ja=np.zeros(capacity, dtype=np.int64),
            a=np.zeros(capacity, dtype=np.float64),
            iwork=np.zeros(capacity, dtype=np.int64),
        )


class CompressedRowBackend(Protocol):
    """Call contract required of a compressed-row storage backend."""

    def initialize_storage(
        self, order: int, capacity: int, buffers: CompressedRowBuffers
    ) -> None:
        """Prepare zeroed buffers for building."""
        ...

    def finalize_storage(
        self, order: int, capacity: int, buffers: CompressedRowBuffers
    ) -> None:
        """Compact the building form into compressed-row form in place."""
        ...

    def reopen_storage(
        self,
        order: int,
        capacity: int,
        buffers: CompressedRowBuffers,
        level: int,
    ) -> int:
        """Reverse compaction so further entries can be inserted."""
        ...

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
        """Write or accumulate one entry at 1-based (row, col)."""
        ...


# =============================================================================
# Default backend
# =============================================================================


def _diagnose(level: int, threshold: int, msg: str) -> None:
    if level >= threshold:
        warnings.warn(msg, RuntimeWarning, stacklevel=3)


class ItpackBackend:
    """NumPy implementation of the ITPACK sparse-storage routines.

    Lookups and compaction are vectorized over the occupied slots; the backend
    keeps no state of its own between calls.
    """

    def initialize_storage(
        self,
        order: int,  # noqa: ARG002
        capacity: int,  # noqa: ARG002
        buffers: CompressedRowBuffers,
    ) -> None:
        """Zero every buffer and mark all slots as free.

        Args:
            order: Number of rows/columns.
            capacity: Reserved number of non-zero slots.
            buffers: Buffers allocated for (order, capacity).
        """
        buffers.ia[:] = 0
        buffers.ja[:] = 0
        buffers.a[:] = 0.0
        buffers.iwork[:] = 0

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
        """Write or accumulate one entry in building form.

        Args:
            order: Number of rows/columns.
            capacity: Reserved number of non-zero slots.
            buffers: Buffers in building form.
            row: 1-based row index.
            col: 1-based column index.
            value: Entry value.
            mode: MODE_REPLACE or MODE_ACCUMULATE.
            level: Diagnostic level.

        Raises:
            ValueError: If mode is not a known insert mode.

        Returns:
            CODE_OK for a new entry, CODE_ENTRY_EXISTS if an existing entry was
            updated, CODE_IMPROPER_INDEX or CODE_INSERT_CAPACITY on error.
        """
        if mode not in (MODE_REPLACE, MODE_ACCUMULATE):
            raise ValueError(_UNKNOWN_MODE_MSG.format(mode=mode))

        if not (1 <= row <= order and 1 <= col <= order):
            _diagnose(
                level,
                LEVEL_ERRORS,
                _IMPROPER_INDEX_MSG.format(row=row, col=col, order=order),
            )
            return CODE_IMPROPER_INDEX

        used = int(buffers.ia[order])
        hits = np.flatnonzero(
            (buffers.iwork[:used] == row) & (buffers.ja[:used] == col)
        )
        if hits.size:
            slot = int(hits[-1])
            if mode == MODE_REPLACE:
                buffers.a[slot] = value
                action = "replaced"
            else:
                buffers.a[slot] += value
                action = "accumulated"
            _diagnose(
                level,
                LEVEL_WARNINGS,
                _ENTRY_EXISTS_MSG.format(row=row, col=col, action=action),
            )
            return CODE_ENTRY_EXISTS

        if used >= capacity:
            _diagnose(
                level,
                LEVEL_ERRORS,
                _INSERT_CAPACITY_MSG.format(row=row, col=col, capacity=capacity),
            )
            return CODE_INSERT_CAPACITY

        buffers.iwork[used] = row
        buffers.ja[used] = col
        buffers.a[used] = value
        buffers.ia[order] = used + 1
        return CODE_OK

    def finalize_storage(
        self, order: int, capacity: int, buffers: CompressedRowBuffers
    ) -> None:
        """Sort occupied slots by (row, column) and write 1-based row offsets.

        Args:
            order: Number of rows/columns.
            capacity: Reserved number of non-zero slots.
            buffers: Buffers in building form.
        """
        used = int(buffers.ia[order])
        rows = buffers.iwork[:used].copy()
        cols = buffers.ja[:used].copy()
        vals = buffers.a[:used].copy()

        perm = np.lexsort((cols, rows))
        counts = np.bincount(rows - 1, minlength=order)

        buffers.ja[:used] = cols[perm]
        buffers.a[:used] = vals[perm]
        buffers.ja[used:capacity] = 0
        buffers.a[used:capacity] = 0.0
        buffers.iwork[:] = 0
        buffers.ia[0] = 1
        buffers.ia[1:] = 1 + np.cumsum(counts)

    def reopen_storage(
        self,
        order: int,
        capacity: int,
        buffers: CompressedRowBuffers,
        level: int,
    ) -> int:
        """Convert compressed-row form back into building form.

        Args:
            order: Number of rows/columns.
            capacity: Reserved number of non-zero slots.
            buffers: Buffers in compact form.
            level: Diagnostic level.

        Returns:
            CODE_OK on success, CODE_REOPEN_CAPACITY if the compact structure
            cannot be held within capacity.
        """
        ia = buffers.ia
        used = int(ia[order]) - 1
        if ia[0] != 1 or used < 0 or used > capacity or np.any(np.diff(ia) < 0):
            _diagnose(
                level,
                LEVEL_ERRORS,
                _REOPEN_CAPACITY_MSG.format(capacity=capacity),
            )
            return CODE_REOPEN_CAPACITY

        counts = np.diff(ia)
        buffers.iwork[:used] = np.repeat(np.arange(1, order + 1), counts)
        buffers.iwork[used:] = 0
        ia[:order] = 0
        ia[order] = used
        return CODE_OK
