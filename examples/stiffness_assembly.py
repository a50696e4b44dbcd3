# fem_sparse/examples/stiffness_assembly.py
"""1D Poisson problem assembled with SparseMatrixBuilder.

Solves -u'' = f on (0, 1) with u(0) = u(1) = 0 using linear finite elements on
a uniform mesh, with f chosen so that the exact solution is sin(pi x).

The example shows the intended client workflow:

- size the reserve from the stencil bandwidth,
- scatter element stiffness matrices with add(),
- impose Dirichlet rows with set(),
- hand the finalized matrix to SciPy for the solve.

Solving is not part of fem_sparse; the CSR export is the hand-off point.
"""

from __future__ import annotations

import numpy as np
from scipy.sparse.linalg import spsolve

from fem_sparse import SparseMatrixBuilder, SparseMatrixConfig, reserve_for_bandwidth

_N_ELEMENTS = 32


def assemble(
    n_elements: int,
) -> tuple[SparseMatrixBuilder, np.ndarray, np.ndarray]:
    """Assemble the stiffness matrix and load vector.

    Args:
        n_elements: Number of mesh elements.

    Returns:
        (matrix builder, load vector, node coordinates).
    """
    n_nodes = n_elements + 1
    h = 1.0 / n_elements
    x = np.linspace(0.0, 1.0, n_nodes)

    cfg = SparseMatrixConfig(
        order=n_nodes,
        reserved_non_zeros=reserve_for_bandwidth(n_nodes, 1),
    )
    stiffness = cfg.build()
    load = np.zeros(n_nodes)

    local = np.array([[1.0, -1.0], [-1.0, 1.0]]) / h
    for e in range(n_elements):
        nodes = (e, e + 1)
        for a, row in enumerate(nodes):
            for b, col in enumerate(nodes):
                stiffness.add(row, col, local[a, b])
        midpoint = 0.5 * (x[e] + x[e + 1])
        load[list(nodes)] += 0.5 * h * np.pi**2 * np.sin(np.pi * midpoint)

    for node in (0, n_nodes - 1):
        for col in range(n_nodes):
            if stiffness.get(node, col) != 0.0:
                stiffness.set(node, col, 0.0)
        stiffness.set(node, node, 1.0)
        load[node] = 0.0

    return stiffness, load, x


def main() -> None:
    """Assemble, solve and report the nodal error."""
    stiffness, load, x = assemble(_N_ELEMENTS)
    u = spsolve(stiffness.to_csr_matrix().tocsc(), load)

    residual = stiffness.multiply_vector(u) - load
    err = np.max(np.abs(u - np.sin(np.pi * x)))

    print(f"order={stiffness.order} nnz={stiffness.nnz}")
    print(f"max residual={np.max(np.abs(residual)):.3e}")
    print(f"max nodal error={err:.3e}")


if __name__ == "__main__":
    main()
