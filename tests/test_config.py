"""Unit tests for fem_sparse.config."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from fem_sparse.config import SparseMatrixConfig, reserve_for_bandwidth
from fem_sparse.sparse_matrix import SparseMatrixBuilder, StorageState


def test_config_defaults() -> None:
    """Defaults describe an empty, silent matrix."""
    cfg = SparseMatrixConfig()
    assert cfg.order == 0
    assert cfg.reserved_non_zeros == 0
    assert cfg.level == -1


def test_config_build_returns_empty_builder() -> None:
    """build() yields an EMPTY builder with the configured sizing."""
    cfg = SparseMatrixConfig(order=5, reserved_non_zeros=13, level=0)
    mat = cfg.build()

    assert isinstance(mat, SparseMatrixBuilder)
    assert mat.state is StorageState.EMPTY
    assert mat.order == 5
    assert mat.reserved_non_zeros == 13
    assert mat.level == 0


def test_config_allows_unknown_fields() -> None:
    """Extra assembler keys are accepted and ignored."""
    cfg = SparseMatrixConfig.model_validate(
        {"order": 3, "reserved_non_zeros": 7, "element_type": "P1"}
    )
    assert cfg.build().order == 3


@pytest.mark.parametrize(
    "payload",
    [
        {"order": -1},
        {"reserved_non_zeros": -4},
        {"level": -2},
        {"order": "many"},
    ],
)
def test_config_rejects_invalid_values(payload: dict[str, object]) -> None:
    """Negative sizes, levels below -1 and non-integers fail validation."""
    with pytest.raises(ValidationError):
        SparseMatrixConfig.model_validate(payload)


def test_from_config_backend_override(recording_backend: object) -> None:
    """from_config forwards a backend override to the builder."""
    cfg = SparseMatrixConfig(order=2, reserved_non_zeros=2)
    mat = SparseMatrixBuilder.from_config(cfg, backend=recording_backend)  # type: ignore[arg-type]
    mat.set(0, 0, 1.0)
    assert recording_backend.calls == ["initialize", "insert"]  # type: ignore[attr-defined]


@pytest.mark.parametrize(
    ("order", "bandwidth", "expected"),
    [(10, 1, 30), (10, 0, 10), (3, 5, 9), (0, 2, 0)],
)
def test_reserve_for_bandwidth(order: int, bandwidth: int, expected: int) -> None:
    """Banded reserve is order*(2*bandwidth+1), clipped to order^2."""
    assert reserve_for_bandwidth(order, bandwidth) == expected


def test_reserve_for_bandwidth_negative() -> None:
    """Negative inputs raise ValueError."""
    with pytest.raises(ValueError, match="non-negative"):
        reserve_for_bandwidth(4, -1)
