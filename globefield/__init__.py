"""Scalar and vector field processing for globe rendering."""

from .animation import AnimationLoop
from .config import DEFAULT_CONTOUR_THRESHOLDS, DEFAULT_LIGHTS, EngineConfig
from .engine import EngineState, FieldPipeline
from .errors import EmptyInput, GlobeFieldError, InvalidDimensions

__all__ = [
    "AnimationLoop",
    "DEFAULT_CONTOUR_THRESHOLDS",
    "DEFAULT_LIGHTS",
    "EngineConfig",
    "EngineState",
    "FieldPipeline",
    "GlobeFieldError",
    "EmptyInput",
    "InvalidDimensions",
]
