"""Field pipeline: loads rasters on a worker pool and answers per-sample queries.

Every load bumps the generation of its field kind. Worker results travel
back through a queue and are applied on the caller thread in `poll()`; a
result whose generation is no longer current is dropped. Until a field
has arrived, queries return None or an empty snapshot.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import singledispatchmethod
import queue
import time
from typing import Any, Callable

import numpy as np
import structlog

from globefield.advection import PARTICLE_FIELDS, STREAMLINE_FIELDS, Advector
from globefield.animation import AnimationLoop
from globefield.config import EngineConfig
from globefield.contours import Contour
from globefield.gradient import VectorGrid
from globefield.illumination import BrightnessFrame, IlluminationModel
from globefield.raster import ScalarGrid, as_pixel_array, check_pixel_buffer
from globefield.rng import RngStream
from globefield.sphere import Bounds
from globefield.workers import (
    ContourResult,
    ContourTask,
    ElevationResult,
    ElevationTask,
    FieldKind,
    GradientResult,
    GradientTask,
    ScalarResult,
    ScalarTask,
    run_task,
)

logger = structlog.get_logger()

FieldReadyFn = Callable[[str, Any], None]

_STAGES = {
    FieldKind.MODEL: ("model.scalar", "model.gradient", "model.contours"),
    FieldKind.RELIEF: ("relief.scalar", "relief.elevation"),
}


@dataclass
class EngineState:
    """Latest applied products, owned by one FieldPipeline."""

    model: ScalarGrid | None = None
    vectors: VectorGrid | None = None
    relief: ScalarGrid | None = None
    elevation: ScalarGrid | None = None
    contours: tuple[Contour, ...] = ()
    generations: dict[FieldKind, int] = field(
        default_factory=lambda: {FieldKind.MODEL: 0, FieldKind.RELIEF: 0}
    )


class FieldPipeline:
    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        executor: Executor | None = None,
        on_field_ready: FieldReadyFn | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="globefield",
        )
        self._results: queue.SimpleQueue = queue.SimpleQueue()
        self._in_flight: dict[str, Future] = {}
        self.on_field_ready = on_field_ready

        self.state = EngineState()
        self.illumination = IlluminationModel(self.config.illumination)
        self.advector = Advector(
            self.config.particles,
            self.config.streamlines,
            rng=RngStream(self.config.seed),
        )

    def __enter__(self) -> "FieldPipeline":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        for future in self._in_flight.values():
            future.cancel()
        self._in_flight.clear()
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    # loading

    def load_model(self, pixels, width: int, height: int) -> int:
        """Queue a new model raster; returns its generation."""

        return self._load(FieldKind.MODEL, pixels, width, height, self.config.raster.model_smoothing_radius)

    def load_relief(self, pixels, width: int, height: int) -> int:
        """Queue a new relief (bump) raster; returns its generation."""

        return self._load(FieldKind.RELIEF, pixels, width, height, self.config.raster.relief_smoothing_radius)

    def _load(self, kind: FieldKind, pixels, width: int, height: int, smoothing_radius: int) -> int:
        flat = as_pixel_array(pixels)
        check_pixel_buffer(flat.size, width, height)

        generation = self.state.generations[kind] + 1
        self.state.generations[kind] = generation
        for stage in _STAGES[kind]:
            stale = self._in_flight.pop(stage, None)
            if stale is not None:
                stale.cancel()

        logger.info("field_load", kind=kind.value, generation=generation, width=width, height=height)
        self._submit(
            f"{kind.value}.scalar",
            ScalarTask(
                kind=kind,
                generation=generation,
                pixels=flat.tobytes(),
                width=width,
                height=height,
                smoothing_radius=smoothing_radius,
                blur_passes=self.config.raster.blur_passes,
            ),
        )
        return generation

    def _submit(self, stage: str, task) -> None:
        future = self._executor.submit(run_task, task)
        self._in_flight[stage] = future
        future.add_done_callback(lambda done: self._results.put((stage, task, done)))

    # result hand-off

    @property
    def busy(self) -> bool:
        return bool(self._in_flight)

    def poll(self) -> int:
        """Apply every finished result; returns how many were applied."""

        applied = 0
        while True:
            try:
                item = self._results.get_nowait()
            except queue.Empty:
                return applied
            applied += self._handle(*item)

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no task is in flight, applying results as they arrive."""

        deadline = None if timeout is None else time.monotonic() + timeout
        self.poll()
        while self._in_flight:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            try:
                item = self._results.get(timeout=remaining)
            except queue.Empty:
                return False
            self._handle(*item)
        return True

    def _handle(self, stage: str, task, future: Future) -> int:
        if self._in_flight.get(stage) is future:
            del self._in_flight[stage]
        if future.cancelled():
            return 0

        error = future.exception()
        if error is not None:
            logger.error(
                "task_failed",
                stage=stage,
                generation=task.generation,
                error=f"{type(error).__name__}: {error}",
            )
            return 0
        return int(self._apply(future.result()))

    def _is_current(self, kind: FieldKind, generation: int, stage: str) -> bool:
        current = self.state.generations[kind]
        if generation != current:
            logger.debug("stale_result_discarded", stage=stage, generation=generation, current=current)
            return False
        return True

    def _notify(self, kind: str, product) -> None:
        if self.on_field_ready is not None:
            self.on_field_ready(kind, product)

    @singledispatchmethod
    def _apply(self, result) -> bool:
        raise TypeError(f"unsupported result type: {type(result).__name__}")

    @_apply.register
    def _(self, result: ScalarResult) -> bool:
        if not self._is_current(result.kind, result.generation, f"{result.kind.value}.scalar"):
            return False

        if result.kind is FieldKind.MODEL:
            self.state.model = result.grid
            self._submit("model.gradient", GradientTask(result.generation, result.grid, self.config.gradient.normalize))
            self._submit("model.contours", ContourTask(result.generation, result.grid, self.config.contours))
        else:
            self.state.relief = result.grid
            self.illumination.relief = result.grid
            if self.config.illumination.hillshade_enabled:
                self._submit(
                    "relief.elevation",
                    ElevationTask(
                        result.generation,
                        result.grid,
                        self.config.illumination.hillshade_smoothing_radius,
                        self.config.raster.blur_passes,
                    ),
                )
        self._notify(result.kind.value, result.grid)
        return True

    @_apply.register
    def _(self, result: GradientResult) -> bool:
        if not self._is_current(FieldKind.MODEL, result.generation, "model.gradient"):
            return False

        self.state.vectors = result.grid
        self.advector.set_field(result.grid)
        self.advector.particles.initialize()
        self.advector.streamlines.initialize()
        self._notify("vectors", result.grid)
        return True

    @_apply.register
    def _(self, result: ContourResult) -> bool:
        if not self._is_current(FieldKind.MODEL, result.generation, "model.contours"):
            return False

        self.state.contours = result.contours
        self._notify("contours", result.contours)
        return True

    @_apply.register
    def _(self, result: ElevationResult) -> bool:
        if not self._is_current(FieldKind.RELIEF, result.generation, "relief.elevation"):
            return False

        self.state.elevation = result.grid
        self.illumination.elevation = result.grid
        self._notify("elevation", result.grid)
        return True

    # queries

    def sample_scalar(self, lon: float, lat: float) -> float | None:
        if self.state.model is None:
            return None
        return float(self.state.model.sample(lon, lat))

    def sample_vector(self, lon: float, lat: float) -> tuple[float, float] | None:
        if self.state.vectors is None:
            return None
        vx, vy = self.state.vectors.sample(lon, lat)
        return float(vx), float(vy)

    def sample_brightness(self, lon: float, lat: float) -> float | None:
        return self.illumination.sample_brightness(lon, lat)

    def brightness_frame(self, samples: np.ndarray) -> BrightnessFrame | None:
        return self.illumination.brightness_frame(samples)

    def particles_snapshot(self) -> np.ndarray:
        if self.state.vectors is None:
            return np.zeros((0, PARTICLE_FIELDS), dtype=np.float32)
        return self.advector.particles.snapshot()

    def streamlines_snapshot(self) -> np.ndarray:
        paths = self.advector.streamlines.snapshot()
        if paths is None:
            return np.zeros((0, self.config.streamlines.path_length, STREAMLINE_FIELDS), dtype=np.float32)
        return paths

    def contours_snapshot(self) -> tuple[Contour, ...]:
        return self.state.contours

    # animation

    def step(self) -> None:
        self.advector.step()

    def reseed(self, bounds: Bounds) -> bool:
        return self.advector.particles.reseed(bounds)

    def refresh_streamlines(self) -> bool:
        return self.advector.streamlines.refresh()

    def _tick(self) -> None:
        self.poll()
        self.step()

    def animation(self, *, on_frame: Callable[[int], None] | None = None, **timing: Any) -> AnimationLoop:
        """Loop that hands off finished fields and advances the particles once per tick.

        `timing` takes the `clock` and `sleep` overrides of `AnimationLoop`.
        """

        return AnimationLoop(self._tick, self.config.animation, on_frame=on_frame, **timing)
