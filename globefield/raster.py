"""Grayscale raster decoding into normalized scalar grids."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import structlog

from globefield.errors import EmptyInput, InvalidDimensions
from globefield.filters import box_blur, normalize01
from globefield.metrics import ScalarStats, scalar_stats
from globefield.sphere import lonlat_to_cell, xy_to_cell

logger = structlog.get_logger()

_LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


@dataclass(frozen=True)
class ScalarGrid:
    """Row-major scalar raster, north to south and -180 to +180 longitude."""

    width: int
    height: int
    values: np.ndarray

    def __post_init__(self) -> None:
        if self.values.shape != (self.height, self.width):
            raise ValueError(
                f"values shape {self.values.shape} does not match {self.height}x{self.width}"
            )

    @property
    def stats(self) -> ScalarStats:
        return scalar_stats(self.values)

    def sample(self, lon, lat):
        """Nearest-cell value at geographic positions."""

        ix, iy = lonlat_to_cell(lon, lat, self.width, self.height)
        return self.values[iy, ix]

    def sample_xy(self, x, y):
        """Nearest-cell value at normalized (x, y) in [0, 1]."""

        ix, iy = xy_to_cell(x, y, self.width, self.height)
        return self.values[iy, ix]


def freeze(values: np.ndarray) -> np.ndarray:
    values.setflags(write=False)
    return values


def as_pixel_array(pixels) -> np.ndarray:
    if isinstance(pixels, (bytes, bytearray, memoryview)):
        return np.frombuffer(pixels, dtype=np.uint8)
    return np.asarray(pixels, dtype=np.uint8).reshape(-1)


def check_pixel_buffer(size: int, width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise EmptyInput(f"raster must have positive width and height, got {width}x{height}")
    expected = width * height * 4
    if size != expected:
        raise InvalidDimensions(
            f"pixel buffer holds {size} bytes, expected {expected} for {width}x{height} RGBA"
        )


def grayscale(pixels, width: int, height: int) -> np.ndarray:
    """Luminosity grayscale in [0, 1] from an RGBA buffer; alpha is ignored."""

    flat = as_pixel_array(pixels)
    check_pixel_buffer(flat.size, width, height)

    rgb = flat.reshape(height, width, 4)[..., :3].astype(np.float32)
    return (rgb @ _LUMA_WEIGHTS) / np.float32(255.0)


def build_scalar_grid(
    pixels,
    width: int,
    height: int,
    smoothing_radius: int = 0,
    *,
    blur_passes: int = 3,
) -> ScalarGrid:
    """Decode an RGBA buffer into a [0, 1] scalar grid.

    The grayscale image is optionally blurred with an edge-clamped box blur of
    `smoothing_radius`, then stretched so its minimum is 0 and maximum is 1.
    A constant image has no range to stretch and comes back as all zeros.
    """

    if smoothing_radius < 0:
        raise ValueError("smoothing_radius must be >= 0")

    values = grayscale(pixels, width, height)
    raw = scalar_stats(values)

    if smoothing_radius > 0:
        values = box_blur(values, smoothing_radius, passes=blur_passes)
        smoothed = scalar_stats(values)
        logger.debug(
            "scalar_smoothed",
            radius=smoothing_radius,
            min=smoothed.minimum,
            max=smoothed.maximum,
        )

    if float(values.max()) == float(values.min()):
        logger.info("scalar_degenerate", width=width, height=height, value=raw.minimum)
    values = normalize01(values)

    logger.debug(
        "scalar_built",
        width=width,
        height=height,
        raw_min=raw.minimum,
        raw_max=raw.maximum,
    )
    return ScalarGrid(width=width, height=height, values=freeze(values))
