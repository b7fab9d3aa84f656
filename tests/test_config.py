from __future__ import annotations

import logging

import pytest
import structlog

from globefield.config import (
    AnimationConfig,
    ContourConfig,
    EngineConfig,
    IlluminationConfig,
    ParticleConfig,
    RasterConfig,
    StreamlineConfig,
)
from globefield.logging_config import configure_logging


def test_defaults_round_trip_to_dict() -> None:
    payload = EngineConfig().to_dict()

    assert payload["particles"]["count"] == 10000
    assert payload["particles"]["max_age"] == 80
    assert payload["streamlines"]["num_paths"] == 64800
    assert payload["contours"]["thresholds"] == (0.3, 0.4, 0.45, 0.5, 0.55, 0.65, 0.7, 0.75, 0.8)
    assert payload["illumination"]["lights"][0]["direction"] == (0.0, 0.0, 1.0)
    assert payload["illumination"]["lights"][1]["azimuth"] == 180.0


@pytest.mark.parametrize(
    "factory",
    [
        lambda: RasterConfig(model_smoothing_radius=-1),
        lambda: IlluminationConfig(lights=()),
        lambda: ParticleConfig(count=-1),
        lambda: ParticleConfig(max_age=0),
        lambda: StreamlineConfig(num_paths=0),
        lambda: ContourConfig(subsample_steps=(4, 0)),
        lambda: ContourConfig(nudge_lon_deg=179.0),
        lambda: AnimationConfig(max_duration_seconds=0.0),
    ],
)
def test_invalid_config_raises(factory) -> None:
    with pytest.raises(ValueError):
        factory()


def test_configure_logging_is_idempotent() -> None:
    try:
        configure_logging(logging.DEBUG, json=True)
        configure_logging(logging.DEBUG, json=True)

        package_logger = logging.getLogger("globefield")
        assert len(package_logger.handlers) == 1
        assert package_logger.level == logging.DEBUG
    finally:
        structlog.reset_defaults()
        logging.getLogger("globefield").handlers.clear()
        logging.getLogger("globefield").propagate = True
