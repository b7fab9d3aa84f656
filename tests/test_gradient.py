from __future__ import annotations

import hashlib

import numpy as np
import pytest

from globefield.gradient import build_vector_grid, horn_kernel
from globefield.raster import ScalarGrid


def _grid(values: np.ndarray) -> ScalarGrid:
    values = np.asarray(values, dtype=np.float32)
    return ScalarGrid(width=values.shape[1], height=values.shape[0], values=values)


def _spike(width: int, height: int, ix: int, iy: int) -> ScalarGrid:
    values = np.zeros((height, width), dtype=np.float32)
    values[iy, ix] = 1.0
    return _grid(values)


def test_gradient_points_towards_spike() -> None:
    vectors = build_vector_grid(_spike(4, 4, 2, 2), normalize=False).vectors

    # west of the spike the field rises eastwards
    assert vectors[2, 1, 0] > 0.0
    assert vectors[2, 1, 1] == pytest.approx(0.0)
    # north of the spike it rises southwards
    assert vectors[1, 2, 1] < 0.0
    # on the spike itself all neighbours are equal
    assert np.allclose(vectors[2, 2], 0.0)


def test_gradient_is_scaled_per_degree() -> None:
    vectors = build_vector_grid(_spike(4, 4, 2, 2), normalize=False).vectors

    # Gx = 2/8 at the west neighbour, cell width 90 degrees
    assert vectors[2, 1, 0] == pytest.approx(0.25 / (2.0 * 90.0))


def test_kernel_wraps_longitude() -> None:
    vectors = build_vector_grid(_spike(8, 4, 0, 1), normalize=False).vectors

    assert vectors[1, 7, 0] > 0.0
    assert vectors[1, 1, 0] < 0.0
    assert vectors[1, 7, 0] == pytest.approx(-vectors[1, 1, 0])


def test_sampling_across_antimeridian_uses_same_column() -> None:
    grid = build_vector_grid(_spike(8, 4, 0, 1))

    assert np.array_equal(grid.sample(179.99, 30.0), grid.sample(-180.01, 30.0))
    assert np.array_equal(grid.sample(-179.99, 30.0), grid.vectors[1, 0])


def test_poles_collapse_onto_edge_rows() -> None:
    values = np.tile(np.arange(6, dtype=np.float32)[:, None], (1, 8))
    vectors = build_vector_grid(_grid(values), normalize=False).vectors

    gy = vectors[..., 1] * (2.0 * 30.0)
    assert np.allclose(gy[0], -0.5)
    assert np.allclose(gy[1:-1], -1.0)
    assert np.allclose(gy[-1], -0.5)
    assert np.allclose(vectors[..., 0], 0.0)


def test_normalized_field_has_unit_maximum() -> None:
    rng = np.random.default_rng(3)
    grid = build_vector_grid(_grid(rng.random((16, 32))))

    norms = np.hypot(grid.vectors[..., 0], grid.vectors[..., 1])
    assert float(norms.max()) == pytest.approx(1.0, abs=1e-6)
    assert grid.stats.max_norm == pytest.approx(1.0, abs=1e-6)


def test_flat_field_has_zero_gradient() -> None:
    grid = build_vector_grid(_grid(np.full((4, 8), 0.5)))

    assert np.array_equal(grid.vectors, np.zeros((4, 8, 2), dtype=np.float32))


def test_horn_kernel_matches_full_grid() -> None:
    rng = np.random.default_rng(11)
    values = rng.random((6, 12))
    grid = build_vector_grid(_grid(values), normalize=False)

    gx, gy = horn_kernel(values.astype(np.float32).astype(np.float64), 5, 0)
    assert grid.vectors[0, 5, 0] == pytest.approx(gx / (2.0 * 30.0), rel=1e-5)
    assert grid.vectors[0, 5, 1] == pytest.approx(gy / (2.0 * 30.0), rel=1e-5)


def test_vector_grid_is_deterministic() -> None:
    rng = np.random.default_rng(5)
    scalar = _grid(rng.random((32, 64)))

    first = build_vector_grid(scalar).vectors
    second = build_vector_grid(scalar).vectors
    assert hashlib.sha256(first.tobytes()).hexdigest() == hashlib.sha256(second.tobytes()).hexdigest()
