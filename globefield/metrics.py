"""Summary statistics for scalar and vector grids."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class ScalarStats:
    """Range summary of a scalar raster."""

    minimum: float
    maximum: float
    mean: float

    @property
    def value_range(self) -> float:
        return self.maximum - self.minimum


@dataclass(frozen=True)
class VectorStats:
    """Component ranges and largest magnitude of a vector raster."""

    vx_min: float
    vx_max: float
    vy_min: float
    vy_max: float
    max_norm: float


def scalar_stats(values: np.ndarray) -> ScalarStats:
    if values.size == 0:
        return ScalarStats(0.0, 0.0, 0.0)
    return ScalarStats(
        minimum=float(values.min()),
        maximum=float(values.max()),
        mean=float(values.mean(dtype=np.float64)),
    )


def vector_stats(vectors: np.ndarray) -> VectorStats:
    """Summarize an array of shape (..., 2) holding (vx, vy) pairs."""

    if vectors.shape[-1] != 2:
        raise ValueError("vectors must have a trailing dimension of 2")
    if vectors.size == 0:
        return VectorStats(0.0, 0.0, 0.0, 0.0, 0.0)

    vx = vectors[..., 0]
    vy = vectors[..., 1]
    norm = np.sqrt(vx.astype(np.float64) ** 2 + vy.astype(np.float64) ** 2)
    return VectorStats(
        vx_min=float(vx.min()),
        vx_max=float(vx.max()),
        vy_min=float(vy.min()),
        vy_max=float(vy.max()),
        max_norm=float(norm.max()),
    )
