"""Directional shading and hillshade relief for visible globe samples.

Brightness handed to the colorizer is relative to the current view: each
frame is stretched over the visible samples to fill [0, 1] before the
contrast power is applied. The same surface point can therefore come out
brighter or darker after the view changes. This is the intended behaviour.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import structlog

from globefield.config import IlluminationConfig, Light
from globefield.filters import box_blur
from globefield.gradient import horn_kernel
from globefield.raster import ScalarGrid, freeze
from globefield.sphere import unit_vector, xy_to_cell, xy_to_lonlat

logger = structlog.get_logger()


@dataclass(frozen=True)
class BrightnessFrame:
    """Per-frame brightness for the visible samples."""

    screen_xy: np.ndarray
    values: np.ndarray
    alpha: float


def light_directions(lights: tuple[Light, ...]) -> np.ndarray:
    return np.array([light.direction for light in lights], dtype=np.float64)


def hillshade_elevation(relief: ScalarGrid, radius: int, *, passes: int = 3) -> ScalarGrid:
    """Smoothed copy of the relief grid; raw relief is too rough to hillshade."""

    values = box_blur(relief.values, radius, passes=passes)
    return ScalarGrid(width=relief.width, height=relief.height, values=freeze(values))


def relative_brightness(values: np.ndarray, power: float) -> np.ndarray:
    """Stretch `values` over their own range and raise to `power`.

    A frame without any spread is returned unchanged.
    """

    values = np.asarray(values, dtype=np.float64)
    if values.size == 0:
        return values
    minimum = float(values.min())
    value_range = float(values.max()) - minimum
    if value_range <= 0.0:
        return values
    return np.power((values - minimum) / value_range, power)


class IlluminationModel:
    """Lambert shading of a bump-displaced sphere plus Horn hillshade."""

    def __init__(
        self,
        config: IlluminationConfig | None = None,
        *,
        relief: ScalarGrid | None = None,
        elevation: ScalarGrid | None = None,
    ) -> None:
        self.config = config or IlluminationConfig()
        self.relief = relief
        self.elevation = elevation
        self._directions = light_directions(self.config.lights)
        self._incidence_terms = self._hillshade_terms(self.config.lights)

    @staticmethod
    def _hillshade_terms(lights: tuple[Light, ...]) -> np.ndarray:
        terms = []
        for light in lights:
            alpha = np.pi - np.deg2rad(light.azimuth)
            beta = np.deg2rad(light.altitude)
            terms.append((np.sin(beta), np.sin(alpha) * np.cos(beta), np.cos(alpha) * np.cos(beta)))
        return np.array(terms, dtype=np.float64)

    @property
    def ready(self) -> bool:
        return self.relief is not None

    def shade(self, lon, lat, bump) -> np.ndarray:
        """Mean Lambert term over the lights, at most (1 + bump_factor) * max light strength for bump in [0, 1]."""

        scale = 1.0 + np.asarray(bump, dtype=np.float64) * self.config.bump_factor
        position = unit_vector(lon, lat) * np.expand_dims(scale, -1)
        dots = position @ self._directions.T
        return np.maximum(dots, 0.0).sum(axis=-1) / len(self.config.lights)

    def hillshade(self, lon, lat, x, y) -> np.ndarray:
        """Hillshade at normalized sample positions; zero until elevation is ready."""

        lon = np.asarray(lon, dtype=np.float64)
        if self.elevation is None or not self.config.hillshade_enabled:
            return np.zeros(lon.shape, dtype=np.float64)

        grid = self.elevation
        ix, iy = xy_to_cell(x, y, grid.width, grid.height)
        gx, gy = horn_kernel(grid.values.astype(np.float64), ix, iy)
        dzdx = gx
        # image rows run north to south
        dzdy = -gy

        z = self.config.hillshade_z_factor
        denominator = np.sqrt(1.0 + z * z * (dzdx * dzdx + dzdy * dzdy))
        normal = unit_vector(lon, lat)

        total = np.zeros(lon.shape, dtype=np.float64)
        for direction, (a1, a2, a3) in zip(self._directions, self._incidence_terms):
            dot = normal @ direction
            incidence = (a1 - z * dzdx * a2 - z * dzdy * a3) / denominator
            contribution = dot * np.clip(incidence, 0.0, 1.0)
            total += np.where(dot >= 0.0, contribution, 0.0)
        return total * self.config.hillshade_strength

    def raw_brightness(self, x, y) -> np.ndarray | None:
        """Directional shade plus hillshade at normalized positions, before rescaling."""

        if self.relief is None:
            return None
        lon, lat = xy_to_lonlat(x, y)
        bump = self.relief.sample_xy(x, y)
        return self.shade(lon, lat, bump) + self.hillshade(lon, lat, x, y)

    def sample_brightness(self, lon: float, lat: float) -> float | None:
        x = (float(lon) + 180.0) / 360.0
        y = (90.0 - float(lat)) / 180.0
        value = self.raw_brightness(x, y)
        if value is None:
            return None
        return float(value)

    def brightness_frame(self, samples: np.ndarray) -> BrightnessFrame | None:
        """Relative brightness for rows of (screenX, screenY, x, y)."""

        samples = np.asarray(samples, dtype=np.float64).reshape(-1, 4)
        raw = self.raw_brightness(samples[:, 2], samples[:, 3])
        if raw is None:
            return None

        values = relative_brightness(raw, self.config.contrast_power)
        if raw.size:
            logger.debug(
                "brightness_frame",
                samples=int(raw.size),
                raw_min=float(raw.min()),
                raw_max=float(raw.max()),
            )
        return BrightnessFrame(
            screen_xy=samples[:, :2].copy(),
            values=values,
            alpha=self.config.texture_strength,
        )
