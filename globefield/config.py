"""Configuration models for field processing."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


DEFAULT_CONTOUR_THRESHOLDS = (0.3, 0.4, 0.45, 0.5, 0.55, 0.65, 0.7, 0.75, 0.8)


@dataclass(frozen=True)
class Light:
    """Directional light; `direction` length scales its relative strength."""

    direction: tuple[float, float, float]
    azimuth: float
    altitude: float


DEFAULT_LIGHTS = (
    Light(direction=(0.0, 0.0, 1.0), azimuth=10.0, altitude=45.0),
    Light(direction=(0.0, 0.0, -0.3), azimuth=180.0, altitude=45.0),
)


@dataclass(frozen=True)
class RasterConfig:
    """Controls raster decoding into scalar grids."""

    model_smoothing_radius: int = 1
    relief_smoothing_radius: int = 0
    blur_passes: int = 3

    def __post_init__(self) -> None:
        if self.model_smoothing_radius < 0 or self.relief_smoothing_radius < 0:
            raise ValueError("smoothing radii must be >= 0")


@dataclass(frozen=True)
class GradientConfig:
    """Controls gradient vector field derivation."""

    normalize: bool = True


@dataclass(frozen=True)
class IlluminationConfig:
    """Directional shading and hillshade parameters."""

    lights: tuple[Light, ...] = DEFAULT_LIGHTS
    bump_factor: float = 1.5
    hillshade_enabled: bool = True
    hillshade_z_factor: float = 200.0
    hillshade_strength: float = 0.2
    hillshade_smoothing_radius: int = 1
    contrast_power: float = 3.0
    texture_strength: float = 0.7

    def __post_init__(self) -> None:
        if not self.lights:
            raise ValueError("at least one light is required")


@dataclass(frozen=True)
class ParticleConfig:
    """Particle pool sizing and integration."""

    count: int = 10000
    max_age: int = 80
    velocity_factor: float = 0.5

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError("count must be >= 0")
        if self.max_age < 1:
            raise ValueError("max_age must be >= 1")


@dataclass(frozen=True)
class StreamlineConfig:
    """Streamline set layout."""

    num_paths: int = 64800
    path_length: int = 6
    regular_locations: bool = True
    velocity_factor: float = 1.0
    max_reseed_attempts: int = 8

    def __post_init__(self) -> None:
        if self.num_paths < 1 or self.path_length < 1:
            raise ValueError("num_paths and path_length must be positive")


@dataclass(frozen=True)
class ContourConfig:
    """Contour extraction and antimeridian repair tolerances."""

    thresholds: tuple[float, ...] = DEFAULT_CONTOUR_THRESHOLDS
    smoothing_radius: int = 3
    blur_passes: int = 3
    subsample_steps: tuple[int, ...] = (16, 8, 4, 2, 1)
    meridian_tolerance_deg: float = 0.01
    merge_tolerance_deg: float = 0.1
    nudge_lon_deg: float = 179.9999

    def __post_init__(self) -> None:
        if self.smoothing_radius < 0:
            raise ValueError("smoothing_radius must be >= 0")
        if not self.subsample_steps or min(self.subsample_steps) < 1:
            raise ValueError("subsample_steps must be positive")
        if self.meridian_tolerance_deg <= 0.0 or self.merge_tolerance_deg <= 0.0:
            raise ValueError("tolerances must be positive")
        if not 180.0 - self.meridian_tolerance_deg < self.nudge_lon_deg < 180.0:
            raise ValueError("nudge_lon_deg must lie within the meridian tolerance of 180")


@dataclass(frozen=True)
class AnimationConfig:
    """Cooperative animation loop timing."""

    tick_seconds: float = 0.04
    max_duration_seconds: float = 300.0

    def __post_init__(self) -> None:
        if self.tick_seconds < 0.0 or self.max_duration_seconds <= 0.0:
            raise ValueError("tick_seconds must be >= 0 and max_duration_seconds > 0")


@dataclass(frozen=True)
class EngineConfig:
    """Primary engine configuration."""

    seed: int = 0
    max_workers: int = 2
    raster: RasterConfig = field(default_factory=RasterConfig)
    gradient: GradientConfig = field(default_factory=GradientConfig)
    illumination: IlluminationConfig = field(default_factory=IlluminationConfig)
    particles: ParticleConfig = field(default_factory=ParticleConfig)
    streamlines: StreamlineConfig = field(default_factory=StreamlineConfig)
    contours: ContourConfig = field(default_factory=ContourConfig)
    animation: AnimationConfig = field(default_factory=AnimationConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
