"""Typed worker tasks for the per-pixel stages of the pipeline.

Tasks and results are frozen dataclasses holding complete buffers, so they
can cross a thread or process boundary without sharing mutable state.
`run_task` dispatches on the task type and is safe to submit to any
`concurrent.futures` executor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import singledispatch

from globefield.config import ContourConfig
from globefield.contours import Contour, ContourStitcher
from globefield.gradient import VectorGrid, build_vector_grid
from globefield.illumination import hillshade_elevation
from globefield.raster import ScalarGrid, build_scalar_grid


class FieldKind(str, Enum):
    MODEL = "model"
    RELIEF = "relief"


@dataclass(frozen=True)
class ScalarTask:
    kind: FieldKind
    generation: int
    pixels: bytes
    width: int
    height: int
    smoothing_radius: int = 0
    blur_passes: int = 3


@dataclass(frozen=True)
class GradientTask:
    generation: int
    scalar: ScalarGrid
    normalize: bool = True


@dataclass(frozen=True)
class ContourTask:
    generation: int
    scalar: ScalarGrid
    config: ContourConfig


@dataclass(frozen=True)
class ElevationTask:
    generation: int
    relief: ScalarGrid
    smoothing_radius: int
    blur_passes: int = 3


@dataclass(frozen=True)
class ScalarResult:
    kind: FieldKind
    generation: int
    grid: ScalarGrid


@dataclass(frozen=True)
class GradientResult:
    generation: int
    grid: VectorGrid


@dataclass(frozen=True)
class ContourResult:
    generation: int
    contours: tuple[Contour, ...]


@dataclass(frozen=True)
class ElevationResult:
    generation: int
    grid: ScalarGrid


@singledispatch
def run_task(task):
    raise TypeError(f"unsupported task type: {type(task).__name__}")


@run_task.register
def _(task: ScalarTask) -> ScalarResult:
    grid = build_scalar_grid(
        task.pixels,
        task.width,
        task.height,
        task.smoothing_radius,
        blur_passes=task.blur_passes,
    )
    return ScalarResult(kind=task.kind, generation=task.generation, grid=grid)


@run_task.register
def _(task: GradientTask) -> GradientResult:
    return GradientResult(generation=task.generation, grid=build_vector_grid(task.scalar, task.normalize))


@run_task.register
def _(task: ContourTask) -> ContourResult:
    contours = ContourStitcher(task.config).extract(task.scalar)
    return ContourResult(generation=task.generation, contours=tuple(contours))


@run_task.register
def _(task: ElevationTask) -> ElevationResult:
    grid = hillshade_elevation(task.relief, task.smoothing_radius, passes=task.blur_passes)
    return ElevationResult(generation=task.generation, grid=grid)
