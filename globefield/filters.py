"""Raster smoothing and range normalization."""

from __future__ import annotations

import numpy as np


def box_blur(field: np.ndarray, radius: int, *, passes: int = 1) -> np.ndarray:
    """Approximate Gaussian blur using repeated separable box passes.

    Edges are clamped, so a constant field stays constant.
    """

    if radius <= 0:
        return field.astype(np.float32, copy=True)

    result = field.astype(np.float32, copy=True)
    for _ in range(max(1, passes)):
        result = _box_blur_axis(result, radius, axis=1)
        result = _box_blur_axis(result, radius, axis=0)
    return result.astype(np.float32)


def _box_blur_axis(field: np.ndarray, radius: int, *, axis: int) -> np.ndarray:
    kernel = 2 * radius + 1
    # float64 accumulation keeps the running sum exact enough on large rasters
    if axis == 0:
        padded = np.pad(field, ((radius, radius), (0, 0)), mode="edge")
        csum = np.cumsum(padded, axis=0, dtype=np.float64)
        csum = np.pad(csum, ((1, 0), (0, 0)), mode="constant", constant_values=0.0)
        return ((csum[kernel:, :] - csum[:-kernel, :]) / float(kernel)).astype(np.float32)

    padded = np.pad(field, ((0, 0), (radius, radius)), mode="edge")
    csum = np.cumsum(padded, axis=1, dtype=np.float64)
    csum = np.pad(csum, ((0, 0), (1, 0)), mode="constant", constant_values=0.0)
    return ((csum[:, kernel:] - csum[:, :-kernel]) / float(kernel)).astype(np.float32)


def normalize01(values: np.ndarray) -> np.ndarray:
    """Stretch `values` onto [0, 1]; a constant field maps to zeros."""

    minimum = float(values.min())
    maximum = float(values.max())
    value_range = maximum - minimum
    if value_range <= 0.0:
        return np.zeros_like(values, dtype=np.float32)
    return np.clip((values - minimum) / value_range, 0.0, 1.0).astype(np.float32)
