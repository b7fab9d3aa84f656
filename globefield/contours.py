"""Iso-value contours in geographic coordinates, repaired across the antimeridian.

The raster spans the full longitude band, so a shape straddling the seam
comes out of marching squares as two rings, one touching lon -180 and one
touching lon +180. Repair works on those seam points:

1. tag every latitude met on the seam with the side(s) it was met on;
2. pull one-sided latitudes onto the nearest opposite-side latitude when it is
   close enough, so both halves share a stitch point;
3. nudge the remaining seam points off the seam;
4. cut rings where they run along the seam and join a fragment ending at
   (s, lat) to one starting at (-s, lat);
5. drop the stitch points left on the seam.

Nudged points stay in their rings as a boundary. Rings returned here are open
polylines unless their first and last points coincide.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np
from skimage import measure
import structlog

from globefield.config import ContourConfig
from globefield.filters import box_blur
from globefield.raster import ScalarGrid

logger = structlog.get_logger()

WEST = 1
EAST = 2
SHARED = WEST | EAST


@dataclass(frozen=True)
class Contour:
    threshold: float
    rings: tuple[np.ndarray, ...]

    @property
    def point_count(self) -> int:
        return sum(len(ring) for ring in self.rings)


def subsample_step(width: int, height: int, steps: Sequence[int] = (16, 8, 4, 2, 1)) -> int:
    """Largest step in `steps` dividing both dimensions."""

    for step in steps:
        if step >= 1 and width % step == 0 and height % step == 0:
            return step
    return 1


def subsample(values: np.ndarray, step: int) -> np.ndarray:
    if step <= 1:
        return values
    return values[::step, ::step]


def pixel_to_geo(points: np.ndarray, width: int, height: int) -> np.ndarray:
    """(row, col) points on the padded grid to (lon, lat).

    Crossings between the outermost cells and the padding snap onto the grid
    edge, so shapes touching the seam land exactly on lon = +-180.
    """

    rows = points[:, 0]
    cols = points[:, 1]
    x = np.where(cols < 1.0, 0.0, np.where(cols > width, float(width), cols - 0.5))
    y = np.where(rows < 1.0, 0.0, np.where(rows > height, float(height), rows - 0.5))
    lon = x / width * 360.0 - 180.0
    lat = 90.0 - y / height * 180.0
    return np.stack((lon, lat), axis=-1)


def _drop_repeats(ring: np.ndarray) -> np.ndarray:
    if len(ring) < 2:
        return ring
    keep = np.ones(len(ring), dtype=bool)
    keep[1:] = np.any(np.diff(ring, axis=0) != 0.0, axis=1)
    return ring[keep]


def extract_rings(values: np.ndarray, threshold: float) -> list[np.ndarray]:
    """Marching-squares rings at `threshold` as (lon, lat) arrays."""

    height, width = values.shape
    floor = min(float(values.min()), float(threshold)) - 1.0
    padded = np.pad(values.astype(np.float64), 1, mode="constant", constant_values=floor)

    rings = []
    for points in measure.find_contours(padded, level=float(threshold), positive_orientation="high"):
        ring = _drop_repeats(pixel_to_geo(points, width, height))
        if len(ring) >= 2:
            rings.append(ring)
    return rings


def _seam_side(lon: float, tolerance: float) -> int:
    if abs(lon + 180.0) <= tolerance:
        return WEST
    if abs(lon - 180.0) <= tolerance:
        return EAST
    return 0


def _seam_flags(rings: Iterable[np.ndarray], tolerance: float) -> dict[float, int]:
    flags: dict[float, int] = {}
    for ring in rings:
        for lon, lat in ring:
            side = _seam_side(lon, tolerance)
            if side:
                flags[float(lat)] = flags.get(float(lat), 0) | side
    return flags


def _merge_latitudes(flags: dict[float, int], tolerance: float) -> tuple[dict[float, float], set[float]]:
    """Map one-sided latitudes onto the closest opposite-side latitude within `tolerance`."""

    remap: dict[float, float] = {}
    shared = {lat for lat, flag in flags.items() if flag == SHARED}
    for lat, flag in flags.items():
        if flag == SHARED or lat in shared:
            continue
        opposite = [
            other
            for other, other_flag in flags.items()
            if other_flag == SHARED ^ flag and other not in remap
        ]
        if not opposite:
            continue
        closest = min(opposite, key=lambda other: abs(other - lat))
        if abs(closest - lat) < tolerance:
            remap[lat] = closest
            shared.add(closest)
    return remap, shared


def _snap_seam_points(
    rings: list[np.ndarray],
    remap: dict[float, float],
    shared: set[float],
    config: ContourConfig,
) -> None:
    tolerance = config.meridian_tolerance_deg
    for ring in rings:
        for point in ring:
            lon = float(point[0])
            if not _seam_side(lon, tolerance):
                continue
            lat = remap.get(float(point[1]), float(point[1]))
            point[1] = lat
            sign = -1.0 if lon < 0.0 else 1.0
            if lat in shared:
                point[0] = sign * 180.0
            else:
                point[0] = sign * config.nudge_lon_deg


def _on_seam(ring: np.ndarray, tolerance: float) -> np.ndarray:
    return np.abs(np.abs(ring[:, 0]) - 180.0) < tolerance


def _at_stitch(ring: np.ndarray) -> np.ndarray:
    return np.abs(ring[:, 0]) == 180.0


def _split_along_seam(ring: np.ndarray, tolerance: float) -> list[np.ndarray]:
    """Cut `ring` at every edge running along the seam from a stitch point."""

    on_seam = _on_seam(ring, tolerance)
    stitch = _at_stitch(ring)
    cut = np.flatnonzero(on_seam[:-1] & on_seam[1:] & (stitch[:-1] | stitch[1:]))
    if cut.size == 0:
        return [ring]

    pieces = []
    start = 0
    for edge in cut:
        pieces.append(ring[start : edge + 1])
        start = edge + 1
    pieces.append(ring[start:])

    closed = len(ring) > 2 and np.array_equal(ring[0], ring[-1])
    if closed:
        # the last piece runs on into the first one through the closing point
        pieces[0] = np.concatenate((pieces[-1], pieces[0][1:]))
        pieces.pop()
    return [piece for piece in pieces if len(piece) >= 2]


def _stitch(fragments: list[np.ndarray]) -> list[tuple[np.ndarray, bool]]:
    """Join fragments leaving the seam at (s, lat) to fragments entering at (-s, lat)."""

    starts: dict[tuple[float, float], list[int]] = {}
    for index, fragment in enumerate(fragments):
        lon, lat = float(fragment[0, 0]), float(fragment[0, 1])
        if abs(lon) == 180.0:
            starts.setdefault((lon, lat), []).append(index)

    successor: dict[int, int] = {}
    claimed: set[int] = set()
    for index, fragment in enumerate(fragments):
        lon, lat = float(fragment[-1, 0]), float(fragment[-1, 1])
        if abs(lon) != 180.0:
            continue
        for candidate in starts.get((-lon, lat), ()):
            if candidate not in claimed:
                successor[index] = candidate
                claimed.add(candidate)
                break

    visited: set[int] = set()

    def walk(head: int) -> tuple[np.ndarray, bool]:
        parts = []
        index: int | None = head
        closed = False
        while index is not None:
            visited.add(index)
            parts.append(fragments[index])
            index = successor.get(index)
            if index == head:
                closed = True
                break
        return np.concatenate(parts), closed

    chains = [walk(index) for index in range(len(fragments)) if index not in claimed]
    # whatever is left forms closed loops of claimed fragments
    for index in range(len(fragments)):
        if index not in visited:
            chains.append(walk(index))
    return chains


def repair_antimeridian(rings: Sequence[np.ndarray], config: ContourConfig | None = None) -> tuple[np.ndarray, ...]:
    """Reconnect rings split by the +-180 seam and strip the stitch points.

    Running the repair on its own output changes nothing.
    """

    config = config or ContourConfig()
    tolerance = config.meridian_tolerance_deg
    work = [np.array(ring, dtype=np.float64) for ring in rings if len(ring)]

    flags = _seam_flags(work, tolerance)
    remap, shared = _merge_latitudes(flags, config.merge_tolerance_deg)
    unmatched = sorted(lat for lat, flag in flags.items() if flag != SHARED and lat not in remap and lat not in shared)
    if unmatched:
        logger.warning(
            "stitch_tolerance_exceeded",
            count=len(unmatched),
            latitudes=[round(lat, 4) for lat in unmatched[:16]],
        )
    _snap_seam_points(work, remap, shared, config)

    fragments = []
    for ring in work:
        fragments.extend(_split_along_seam(ring, tolerance))

    repaired = []
    for chain, closed in _stitch(fragments):
        kept = chain[~_at_stitch(chain)]
        if closed and len(kept) and not np.array_equal(kept[0], kept[-1]):
            kept = np.concatenate((kept, kept[:1]))
        if len(kept) >= 2:
            repaired.append(kept)
    return tuple(repaired)


class ContourStitcher:
    """Threshold contours of a scalar grid, ready to draw on a globe."""

    def __init__(self, config: ContourConfig | None = None) -> None:
        self.config = config or ContourConfig()

    def prepare(self, scalar: ScalarGrid) -> np.ndarray:
        """Subsampled and smoothed copy of the grid values."""

        step = subsample_step(scalar.width, scalar.height, self.config.subsample_steps)
        values = subsample(scalar.values, step)
        logger.debug(
            "contour_grid",
            step=step,
            width=int(values.shape[1]),
            height=int(values.shape[0]),
        )
        return box_blur(values, self.config.smoothing_radius, passes=self.config.blur_passes)

    def extract(self, scalar: ScalarGrid, thresholds: Sequence[float] | None = None) -> list[Contour]:
        thresholds = self.config.thresholds if thresholds is None else tuple(thresholds)
        values = self.prepare(scalar)

        contours = []
        for threshold in thresholds:
            rings = repair_antimeridian(extract_rings(values, threshold), self.config)
            contours.append(Contour(threshold=float(threshold), rings=rings))
        logger.debug(
            "contours_built",
            thresholds=len(contours),
            rings=sum(len(contour.rings) for contour in contours),
        )
        return contours
