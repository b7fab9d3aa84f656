"""Gradient vector fields on a full longitude band.

Neighbour layout of the Horn kernel around cell x::

    A  B  C
    D  x  E
    F  G  H

Columns wrap around longitude since the raster covers 360 degrees. Rows do
not wrap across the poles: on the first and last row the missing row
collapses onto the current one.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import structlog

from globefield.metrics import VectorStats, vector_stats
from globefield.raster import ScalarGrid, freeze
from globefield.sphere import lonlat_to_cell

logger = structlog.get_logger()


@dataclass(frozen=True)
class VectorGrid:
    """Per-cell (vx, vy) pairs, indexed like the scalar grid they came from."""

    width: int
    height: int
    vectors: np.ndarray

    def __post_init__(self) -> None:
        if self.vectors.shape != (self.height, self.width, 2):
            raise ValueError(
                f"vectors shape {self.vectors.shape} does not match {self.height}x{self.width}x2"
            )

    @property
    def stats(self) -> VectorStats:
        return vector_stats(self.vectors)

    def sample(self, lon, lat) -> np.ndarray:
        """Nearest-cell vector at geographic positions, trailing axis (vx, vy)."""

        ix, iy = lonlat_to_cell(lon, lat, self.width, self.height)
        return self.vectors[iy, ix]


def horn_kernel(values: np.ndarray, ix, iy) -> tuple[np.ndarray, np.ndarray]:
    """Raw Horn differences (Gx east-positive, Gy north-positive) at cells (ix, iy)."""

    height, width = values.shape
    ix = np.asarray(ix, dtype=np.int64)
    iy = np.asarray(iy, dtype=np.int64)

    west = np.mod(ix - 1, width)
    east = np.mod(ix + 1, width)
    north = np.maximum(iy - 1, 0)
    south = np.minimum(iy + 1, height - 1)

    a = values[north, west]
    b = values[north, ix]
    c = values[north, east]
    d = values[iy, west]
    e = values[iy, east]
    f = values[south, west]
    g = values[south, ix]
    h = values[south, east]

    gx = 0.125 * ((c + 2.0 * e + h) - (a + 2.0 * d + f))
    gy = 0.125 * ((a + 2.0 * b + c) - (f + 2.0 * g + h))
    return gx, gy


def build_vector_grid(scalar: ScalarGrid, normalize: bool = True) -> VectorGrid:
    """Gradient of `scalar` in units of value per degree.

    With `normalize`, every vector is divided by the largest magnitude on the
    grid so the strongest gradient has length 1; a flat grid stays all zero.
    """

    width, height = scalar.width, scalar.height
    dlon = 360.0 / width
    dlat = 180.0 / height

    values = scalar.values.astype(np.float64)
    iy, ix = np.indices((height, width))
    gx, gy = horn_kernel(values, ix, iy)

    vectors = np.empty((height, width, 2), dtype=np.float64)
    vectors[..., 0] = gx / (2.0 * dlon)
    vectors[..., 1] = gy / (2.0 * dlat)

    stats = vector_stats(vectors)
    logger.debug(
        "gradient_built",
        width=width,
        height=height,
        vx_min=stats.vx_min,
        vx_max=stats.vx_max,
        vy_min=stats.vy_min,
        vy_max=stats.vy_max,
        max_norm=stats.max_norm,
    )

    if normalize and stats.max_norm > 0.0:
        vectors /= stats.max_norm

    return VectorGrid(width=width, height=height, vectors=freeze(vectors.astype(np.float32)))
