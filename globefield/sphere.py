"""Geographic helpers shared by the samplers, advection and view code."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Callable, Optional, Sequence

import numpy as np

InvertFn = Callable[[Sequence[float]], Optional[Sequence[float]]]


@dataclass(frozen=True)
class Bounds:
    """Lon/lat window; `lon_max` may exceed 180 across the antimeridian."""

    lon_min: float = -180.0
    lon_max: float = 180.0
    lat_min: float = -90.0
    lat_max: float = 90.0

    @property
    def lon_span(self) -> float:
        return self.lon_max - self.lon_min

    @property
    def lat_span(self) -> float:
        return self.lat_max - self.lat_min


GLOBAL_BOUNDS = Bounds()


def unit_vector(lon, lat) -> np.ndarray:
    """Cartesian position on the unit sphere, trailing axis (x, y, z)."""

    lon_rad = np.deg2rad(np.asarray(lon, dtype=np.float64))
    lat_rad = np.deg2rad(np.asarray(lat, dtype=np.float64))
    cos_lat = np.cos(lat_rad)
    return np.stack(
        (cos_lat * np.cos(lon_rad), cos_lat * np.sin(lon_rad), np.sin(lat_rad)),
        axis=-1,
    )


def hemisphere_visible(lon, lat, center_lon: float, center_lat: float) -> np.ndarray:
    """Back-face cull for an orthographic globe centred on (center_lon, center_lat)."""

    center = unit_vector(center_lon, center_lat)
    return unit_vector(lon, lat) @ center >= 0.0


def lonlat_to_cell(lon, lat, width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    """Nearest grid cell for geographic positions.

    Longitude wraps around the full band; latitude is clamped to the poles.
    """

    dlon = 360.0 / width
    dlat = 180.0 / height
    lon_shifted = np.mod(np.asarray(lon, dtype=np.float64) + 180.0, 360.0)
    lat_clamped = np.clip(np.asarray(lat, dtype=np.float64), -90.0, 90.0)
    ix = np.clip(np.floor(lon_shifted / dlon).astype(np.int64), 0, width - 1)
    iy = np.clip(np.floor((90.0 - lat_clamped) / dlat).astype(np.int64), 0, height - 1)
    return ix, iy


def xy_to_cell(x, y, width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    """Nearest grid cell for normalized (x, y) in [0, 1]."""

    ix = np.clip(np.floor(np.asarray(x, dtype=np.float64) * width).astype(np.int64), 0, width - 1)
    iy = np.clip(np.floor(np.asarray(y, dtype=np.float64) * height).astype(np.int64), 0, height - 1)
    return ix, iy


def xy_to_lonlat(x, y) -> tuple[np.ndarray, np.ndarray]:
    lon = np.asarray(x, dtype=np.float64) * 360.0 - 180.0
    lat = 90.0 - np.asarray(y, dtype=np.float64) * 180.0
    return lon, lat


def sampling_stride(scale: float) -> tuple[int, int]:
    """Screen sampling step (dx, dy) for a projection scale; zooming in samples denser."""

    if scale < 100:
        return 4, 4
    if scale < 1000:
        return 2, 2
    if scale < 5000:
        return 2, 1
    return 1, 1


def _valid_position(position: Optional[Sequence[float]]) -> bool:
    if position is None:
        return False
    return not (math.isnan(position[0]) or math.isnan(position[1]))


def visible_samples(
    invert: InvertFn,
    width: int,
    height: int,
    scale: float,
    *,
    stride: tuple[int, int] | None = None,
) -> np.ndarray:
    """Screen samples on the globe disc as rows of (screenX, screenY, x, y).

    The globe is assumed centred on the canvas with radius `scale` pixels.
    """

    dx, dy = stride or sampling_stride(scale)
    cx = width * 0.5
    cy = height * 0.5
    radius_sq = scale * scale

    rows: list[tuple[float, float, float, float]] = []
    for iy in range(0, height, dy):
        for ix in range(0, width, dx):
            if (ix - cx) ** 2 + (iy - cy) ** 2 > radius_sq:
                continue
            position = invert((ix, iy))
            if not _valid_position(position):
                continue
            x = (position[0] + 180.0) / 360.0
            y = (90.0 - position[1]) / 180.0
            rows.append((float(ix), float(iy), x, y))

    if not rows:
        return np.zeros((0, 4), dtype=np.float64)
    return np.asarray(rows, dtype=np.float64)


def view_bounds(invert: InvertFn, width: int, height: int, *, step: int = 4) -> Bounds:
    """Lon/lat window covered by the view, continuous across the antimeridian.

    When a scanline jumps from about +180 to -180 the negative longitudes are
    shifted by +360 so a view over the seam yields e.g. [120, 200].
    """

    lon_min, lon_max = 360.0, -360.0
    lat_min, lat_max = 90.0, -90.0
    shift = 0.0
    found = False

    for iy in range(0, height, step):
        lon_prev = None
        for ix in range(0, width, step):
            position = invert((ix, iy))
            if not _valid_position(position):
                continue
            lon, lat = float(position[0]), float(position[1])
            if lon_prev is not None and lon - lon_prev < -180.0:
                shift = 360.0
            lon_prev = lon
            if lon < 0.0:
                lon += shift
            lon_min = min(lon_min, lon)
            lon_max = max(lon_max, lon)
            lat_min = min(lat_min, lat)
            lat_max = max(lat_max, lat)
            found = True

    if not found:
        return GLOBAL_BOUNDS
    return Bounds(lon_min, lon_max, lat_min, lat_max)


def center_lonlat(invert: InvertFn, width: int, height: int) -> tuple[float, float] | None:
    """Geographic position under the canvas centre, or None off the globe."""

    position = invert((width // 2, height // 2))
    if not _valid_position(position):
        return None
    return float(position[0]), float(position[1])
