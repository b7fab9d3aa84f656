"""Particle and streamline advection through a gradient field on the sphere.

Both structures live in preallocated float32 arenas. Particles are stepped
in place; a particle leaving the latitude range or outliving `max_age` is
respawned in the same slot. Streamlines are integrated once per start
position and kept whole.
"""

from __future__ import annotations

import math

import numpy as np
import structlog

from globefield.config import ParticleConfig, StreamlineConfig
from globefield.gradient import VectorGrid
from globefield.rng import RngStream
from globefield.sphere import GLOBAL_BOUNDS, Bounds, hemisphere_visible

logger = structlog.get_logger()

PARTICLE_FIELDS = 5
STREAMLINE_FIELDS = 4

LON, LAT, VX, VY, AGE = range(PARTICLE_FIELDS)


def visible_segments(points: np.ndarray, center_lon: float, center_lat: float) -> np.ndarray:
    """Segments (lon0, lat0, lon1, lat1) from rows of (lon, lat, vx, vy) with both ends visible."""

    points = np.asarray(points, dtype=np.float64)
    points = points.reshape(-1, points.shape[-1])
    lon0, lat0 = points[:, 0], points[:, 1]
    lon1 = lon0 + points[:, 2]
    lat1 = lat0 + points[:, 3]
    keep = hemisphere_visible(lon0, lat0, center_lon, center_lat) & hemisphere_visible(
        lon1, lat1, center_lon, center_lat
    )
    return np.stack((lon0, lat0, lon1, lat1), axis=-1)[keep]


class ParticlePool:
    """Fixed-size particle arena of (lon, lat, vx, vy, age) rows."""

    def __init__(self, config: ParticleConfig | None = None, *, rng: RngStream | None = None) -> None:
        self.config = config or ParticleConfig()
        self._generator = (rng or RngStream(0)).fork("particles").generator()
        self._field: VectorGrid | None = None
        self._buffer = np.zeros(0, dtype=np.float32)
        self._stepping = False
        self.bounds = GLOBAL_BOUNDS

    @property
    def count(self) -> int:
        return self._buffer.size // PARTICLE_FIELDS

    @property
    def _rows(self) -> np.ndarray:
        return self._buffer.reshape(-1, PARTICLE_FIELDS)

    def set_field(self, field: VectorGrid | None) -> None:
        self._field = field

    def _velocity(self, lon: np.ndarray, lat: np.ndarray) -> np.ndarray:
        return self._field.sample(lon, lat) * np.float32(self.config.velocity_factor)

    def initialize(self, count: int | None = None) -> bool:
        """Allocate the arena and spawn every slot; False while no field is set."""

        if self._field is None:
            return False
        count = self.config.count if count is None else int(count)
        if count < 0:
            raise ValueError("count must be >= 0")
        if self._buffer.size != count * PARTICLE_FIELDS:
            self._buffer = np.zeros(count * PARTICLE_FIELDS, dtype=np.float32)
        self._spawn(np.arange(count))
        logger.debug("particles_initialized", count=count)
        return True

    def reseed(self, bounds: Bounds) -> bool:
        """Respawn all particles inside a new view window."""

        self.bounds = bounds
        if self._field is None or self.count == 0:
            return False
        self._spawn(np.arange(self.count))
        return True

    def _spawn(self, slots: np.ndarray) -> None:
        if slots.size == 0:
            return
        rows = self._rows
        b = self.bounds
        lon = b.lon_min + self._generator.random(slots.size) * b.lon_span
        lat = np.clip(b.lat_min + self._generator.random(slots.size) * b.lat_span, -90.0, 90.0)
        velocity = self._velocity(lon, lat)
        rows[slots, LON] = lon
        rows[slots, LAT] = lat
        rows[slots, VX] = velocity[:, 0]
        rows[slots, VY] = velocity[:, 1]
        # spread initial ages so respawns do not happen in lockstep
        rows[slots, AGE] = self._generator.integers(0, self.config.max_age, size=slots.size)

    def place(self, slot: int, lon: float, lat: float, age: int = 0) -> None:
        """Put one particle at a chosen position, sampling its velocity."""

        if self._field is None:
            raise RuntimeError("cannot place particles before a vector field is set")
        rows = self._rows
        velocity = self._velocity(np.array([lon]), np.array([lat]))[0]
        rows[slot] = (lon, lat, velocity[0], velocity[1], age)

    def step(self) -> None:
        """Advance every particle by one Euler step of its current velocity."""

        if self._field is None or self.count == 0:
            return
        self._stepping = True
        try:
            rows = self._rows
            rows[:, LON] += rows[:, VX]
            rows[:, LAT] += rows[:, VY]

            lat = rows[:, LAT]
            velocity = self._velocity(rows[:, LON], lat)
            rows[:, VX] = velocity[:, 0]
            rows[:, VY] = velocity[:, 1]

            age = np.where(np.abs(lat) > 90.0, np.float32(self.config.max_age), rows[:, AGE]) + 1
            rows[:, AGE] = age
            expired = np.flatnonzero(age > self.config.max_age)
            self._spawn(expired)
        finally:
            self._stepping = False

    def snapshot(self) -> np.ndarray:
        """Read-only copy of the arena as (count, 5) rows."""

        if self._stepping:
            raise RuntimeError("particle snapshot requested during a step")
        rows = self._rows.copy()
        rows.setflags(write=False)
        return rows

    def visible_segments(self, center_lon: float, center_lat: float) -> np.ndarray:
        rows = self.snapshot()
        alive = rows[rows[:, AGE] < self.config.max_age]
        return visible_segments(alive[:, :4], center_lon, center_lat)


def lattice_dimensions(num_paths: int) -> tuple[int, int]:
    """(lon_steps, lat_steps) of a near-square lattice with at least `num_paths` nodes."""

    if num_paths < 1:
        raise ValueError("num_paths must be positive")
    spacing = math.sqrt((360.0 * 180.0) / num_paths)
    lon_steps = max(1, math.floor(360.0 / spacing))
    lat_steps = max(1, math.floor(180.0 / spacing))
    while lon_steps * lat_steps < num_paths:
        lon_steps += 1
    return lon_steps, lat_steps


def lattice_starts(num_paths: int) -> np.ndarray:
    """Regular start positions, half a step off the poles and the antimeridian."""

    lon_steps, lat_steps = lattice_dimensions(num_paths)
    dlon = 360.0 / lon_steps
    dlat = 180.0 / lat_steps
    n = np.arange(num_paths)
    lon = -180.0 + 0.5 * dlon + (n % lon_steps) * dlon
    lat = -90.0 + 0.5 * dlat + (n // lon_steps) * dlat
    return np.stack((lon, lat), axis=-1)


class StreamlineSet:
    """Precomputed streamlines stored as (num_paths, path_length, 4) samples."""

    def __init__(self, config: StreamlineConfig | None = None, *, rng: RngStream | None = None) -> None:
        self.config = config or StreamlineConfig()
        self._generator = (rng or RngStream(0)).fork("streamlines").generator()
        self._field: VectorGrid | None = None
        self._paths: np.ndarray | None = None

    def set_field(self, field: VectorGrid | None) -> None:
        self._field = field

    def _integrate(self, lon: np.ndarray, lat: np.ndarray, length: int) -> np.ndarray:
        lon = np.clip(np.asarray(lon, dtype=np.float64), -180.0, 180.0)
        lat = np.clip(np.asarray(lat, dtype=np.float64), -90.0, 90.0)
        paths = np.empty((lon.size, length, STREAMLINE_FIELDS), dtype=np.float32)
        factor = self.config.velocity_factor
        for m in range(length):
            velocity = self._field.sample(lon, lat).astype(np.float64) * factor
            paths[:, m, 0] = lon
            paths[:, m, 1] = lat
            paths[:, m, 2] = velocity[:, 0]
            paths[:, m, 3] = velocity[:, 1]
            lon = lon + velocity[:, 0]
            lat = lat + velocity[:, 1]
        return paths

    def build_path(self, start_lon: float, start_lat: float, length: int | None = None) -> np.ndarray | None:
        """Euler-integrate one streamline, keeping every intermediate sample."""

        if self._field is None:
            return None
        length = self.config.path_length if length is None else int(length)
        return self._integrate(np.array([start_lon]), np.array([start_lat]), length)[0]

    def _random_starts(self, count: int) -> np.ndarray:
        lon = (self._generator.random(count) - 0.5) * 360.0
        lat = (self._generator.random(count) - 0.5) * 180.0
        return np.stack((lon, lat), axis=-1)

    def _starts(self) -> np.ndarray:
        num_paths = self.config.num_paths
        if self.config.regular_locations:
            return lattice_starts(num_paths)

        starts = self._random_starts(num_paths)
        # redraw starts sitting on a zero vector, a bounded number of times
        for _ in range(self.config.max_reseed_attempts):
            still = np.flatnonzero(np.all(self._field.sample(starts[:, 0], starts[:, 1]) == 0.0, axis=-1))
            if still.size == 0:
                break
            starts[still] = self._random_starts(still.size)
        return starts

    def initialize(self) -> bool:
        if self._field is None:
            return False
        starts = self._starts()
        self._paths = self._integrate(starts[:, 0], starts[:, 1], self.config.path_length)
        logger.debug(
            "streamlines_initialized",
            paths=self.config.num_paths,
            length=self.config.path_length,
            regular=self.config.regular_locations,
        )
        return True

    def refresh(self) -> bool:
        """Regenerate random streamlines; a regular lattice never needs it."""

        if self.config.regular_locations or self._paths is None:
            return False
        return self.initialize()

    def snapshot(self) -> np.ndarray | None:
        if self._paths is None:
            return None
        paths = self._paths.copy()
        paths.setflags(write=False)
        return paths

    def visible_segments(self, center_lon: float, center_lat: float) -> np.ndarray:
        if self._paths is None:
            return np.zeros((0, 4), dtype=np.float64)
        return visible_segments(self._paths.reshape(-1, STREAMLINE_FIELDS), center_lon, center_lat)


class Advector:
    """Particles and streamlines driven by the same vector field."""

    def __init__(
        self,
        particle_config: ParticleConfig | None = None,
        streamline_config: StreamlineConfig | None = None,
        *,
        rng: RngStream | None = None,
    ) -> None:
        rng = rng or RngStream(0)
        self.particles = ParticlePool(particle_config, rng=rng)
        self.streamlines = StreamlineSet(streamline_config, rng=rng)

    def set_field(self, field: VectorGrid | None) -> None:
        self.particles.set_field(field)
        self.streamlines.set_field(field)

    def step(self) -> None:
        self.particles.step()
