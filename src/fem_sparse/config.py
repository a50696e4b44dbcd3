# fem_sparse/src/fem_sparse/config.py
"""Configuration model for sparse matrix builders.

Assemblers usually read matrix sizing from a YAML/JSON run configuration. This
module defines the pydantic model for that block and translates it into a
SparseMatrixBuilder.

Notes:
    - Unknown fields are allowed and ignored (`extra="allow"`), so the model can
      be parsed from a larger assembler configuration.
    - Validation here only checks signs; positivity is enforced when storage is
      actually allocated, so an order-only configuration remains valid.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .backend import LEVEL_SILENT
from .sparse_matrix import SparseMatrixBuilder


class SparseMatrixConfig(BaseModel):
    """Sizing and diagnostics for a SparseMatrixBuilder."""

    model_config = ConfigDict(extra="allow")

    order: int = Field(default=0, ge=0, description="Rows/columns of the matrix")
    reserved_non_zeros: int = Field(
        default=0,
        ge=0,
        description="Maximum number of stored entries",
    )
    level: int = Field(
        default=LEVEL_SILENT,
        ge=LEVEL_SILENT,
        description="Backend diagnostic level (-1 silent)",
    )

    def build(self) -> SparseMatrixBuilder:
        """Create an empty SparseMatrixBuilder with this configuration.

        Returns:
            New SparseMatrixBuilder in the EMPTY state.
        """
        return SparseMatrixBuilder.from_config(self)


def reserve_for_bandwidth(order: int, bandwidth: int) -> int:
    """Estimate reserved_non_zeros for a banded matrix.

    Args:
        order: Rows/columns of the matrix.
        bandwidth: Number of non-zero off-diagonals on each side of the main
            diagonal.

    Raises:
        ValueError: If order or bandwidth is negative.

    Returns:
        ``order * (2 * bandwidth + 1)``, clipped to ``order * order``.
    """
    if order < 0 or bandwidth < 0:
        msg = f"order and bandwidth must be non-negative; got {order}, {bandwidth}"
        raise ValueError(msg)
    return min(order * (2 * bandwidth + 1), order * order)
