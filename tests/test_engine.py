from __future__ import annotations

from concurrent.futures import Executor, Future

import numpy as np
import pytest
from structlog.testing import capture_logs

from globefield.config import ContourConfig, EngineConfig, ParticleConfig, StreamlineConfig
from globefield.engine import FieldPipeline
from globefield.errors import EmptyInput, InvalidDimensions
from globefield.workers import ContourTask, FieldKind


class ManualExecutor(Executor):
    """Runs submitted tasks only when told to, on the calling thread."""

    def __init__(self, fail_on: type | None = None) -> None:
        self.pending: list = []
        self.fail_on = fail_on

    def submit(self, fn, /, *args, **kwargs):
        future: Future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_all(self) -> None:
        while self.pending:
            future, fn, args, kwargs = self.pending.pop(0)
            if not future.set_running_or_notify_cancel():
                continue
            if self.fail_on is not None and isinstance(args[0], self.fail_on):
                future.set_exception(RuntimeError("worker crashed"))
                continue
            future.set_result(fn(*args, **kwargs))


def _config() -> EngineConfig:
    return EngineConfig(
        particles=ParticleConfig(count=16),
        streamlines=StreamlineConfig(num_paths=32, path_length=3),
        contours=ContourConfig(thresholds=(0.5,), smoothing_radius=1, subsample_steps=(1,)),
    )


def _halves(width: int = 32, height: int = 16, *, left_white: bool) -> bytes:
    gray = np.zeros((height, width), dtype=np.uint8)
    if left_white:
        gray[:, : width // 2] = 255
    else:
        gray[:, width // 2 :] = 255
    alpha = np.full_like(gray, 255)
    return np.stack((gray, gray, gray, alpha), axis=-1).tobytes()


def _drain(pipeline: FieldPipeline, executor: ManualExecutor) -> None:
    pipeline.poll()
    while executor.pending:
        executor.run_all()
        pipeline.poll()


def test_queries_before_any_field_return_nothing() -> None:
    with FieldPipeline(_config(), executor=ManualExecutor()) as pipeline:
        assert pipeline.sample_scalar(0.0, 0.0) is None
        assert pipeline.sample_vector(0.0, 0.0) is None
        assert pipeline.sample_brightness(0.0, 0.0) is None
        assert pipeline.brightness_frame(np.zeros((3, 4))) is None
        assert pipeline.particles_snapshot().shape == (0, 5)
        assert pipeline.streamlines_snapshot().shape == (0, 3, 4)
        assert pipeline.contours_snapshot() == ()


def test_model_load_chains_gradient_and_contours() -> None:
    ready: list[str] = []
    executor = ManualExecutor()
    pipeline = FieldPipeline(_config(), executor=executor, on_field_ready=lambda kind, _: ready.append(kind))

    generation = pipeline.load_model(_halves(left_white=True), 32, 16)
    assert generation == 1
    assert pipeline.busy
    _drain(pipeline, executor)

    assert not pipeline.busy
    assert ready == ["model", "vectors", "contours"]
    assert pipeline.sample_scalar(-90.0, 0.0) == pytest.approx(1.0)
    assert pipeline.sample_scalar(90.0, 0.0) == pytest.approx(0.0)
    assert pipeline.sample_vector(0.0, 0.0) is not None
    assert pipeline.particles_snapshot().shape == (16, 5)
    assert pipeline.streamlines_snapshot().shape == (32, 3, 4)
    assert len(pipeline.contours_snapshot()) == 1


def test_stale_generation_is_discarded() -> None:
    executor = ManualExecutor()
    pipeline = FieldPipeline(_config(), executor=executor)

    pipeline.load_model(_halves(left_white=False), 32, 16)
    # the first scalar finishes only after the second load was queued
    executor.run_all()
    pipeline.load_model(_halves(left_white=True), 32, 16)

    with capture_logs() as logs:
        assert pipeline.poll() == 0
    assert pipeline.state.model is None
    assert any(entry["event"] == "stale_result_discarded" for entry in logs)

    _drain(pipeline, executor)
    assert pipeline.state.generations[FieldKind.MODEL] == 2
    assert pipeline.sample_scalar(-90.0, 0.0) == pytest.approx(1.0)


def test_reload_cancels_queued_tasks() -> None:
    executor = ManualExecutor()
    pipeline = FieldPipeline(_config(), executor=executor)

    pipeline.load_model(_halves(left_white=False), 32, 16)
    pipeline.load_model(_halves(left_white=True), 32, 16)
    _drain(pipeline, executor)

    assert pipeline.sample_scalar(-90.0, 0.0) == pytest.approx(1.0)


def test_failed_task_keeps_previous_state() -> None:
    executor = ManualExecutor(fail_on=ContourTask)
    pipeline = FieldPipeline(_config(), executor=executor)

    pipeline.load_model(_halves(left_white=True), 32, 16)
    with capture_logs() as logs:
        _drain(pipeline, executor)

    assert pipeline.state.model is not None
    assert pipeline.state.vectors is not None
    assert pipeline.contours_snapshot() == ()
    failures = [entry for entry in logs if entry["event"] == "task_failed"]
    assert len(failures) == 1
    assert failures[0]["stage"] == "model.contours"
    assert failures[0]["log_level"] == "error"


def test_bad_buffers_raise_before_submission() -> None:
    executor = ManualExecutor()
    pipeline = FieldPipeline(_config(), executor=executor)

    with pytest.raises(InvalidDimensions):
        pipeline.load_model(bytes(10), 32, 16)
    with pytest.raises(EmptyInput):
        pipeline.load_relief(b"", 0, 16)

    assert executor.pending == []
    assert pipeline.state.generations[FieldKind.MODEL] == 0


def test_relief_enables_brightness_and_hillshade() -> None:
    ready: list[str] = []
    executor = ManualExecutor()
    pipeline = FieldPipeline(_config(), executor=executor, on_field_ready=lambda kind, _: ready.append(kind))

    pipeline.load_relief(_halves(left_white=True), 32, 16)
    _drain(pipeline, executor)

    assert ready == ["relief", "elevation"]
    assert pipeline.sample_brightness(10.0, 45.0) is not None
    samples = np.array([[0.0, 0.0, 0.2, 0.3], [1.0, 0.0, 0.7, 0.4], [2.0, 0.0, 0.5, 0.6]])
    frame = pipeline.brightness_frame(samples)
    assert frame is not None
    assert float(frame.values.min()) == 0.0
    assert float(frame.values.max()) == pytest.approx(1.0)


def test_thread_pool_pipeline_runs_to_idle() -> None:
    with FieldPipeline(_config()) as pipeline:
        pipeline.load_model(_halves(left_white=True), 32, 16)
        pipeline.load_relief(_halves(left_white=False), 32, 16)
        assert pipeline.wait_idle(timeout=60.0)

        assert pipeline.state.model is not None
        assert pipeline.state.vectors is not None
        assert pipeline.state.elevation is not None
        before = pipeline.particles_snapshot()
        pipeline.step()
        assert not np.array_equal(before, pipeline.particles_snapshot())


def test_animation_loop_hands_off_fields_and_steps_particles() -> None:
    executor = ManualExecutor()
    ready: list[str] = []
    frames: list[int] = []
    with FieldPipeline(_config(), executor=executor, on_field_ready=lambda kind, _: ready.append(kind)) as pipeline:
        loop = pipeline.animation(on_frame=frames.append, sleep=lambda seconds: None)
        pipeline.load_model(_halves(left_white=True), 32, 16)
        executor.run_all()

        assert loop.run(ticks=1) == 1
        assert ready == ["model"]
        assert pipeline.particles_snapshot().shape == (0, 5)

        executor.run_all()
        loop.run(ticks=1)
        assert "vectors" in ready
        first = pipeline.particles_snapshot()
        assert first.shape == (16, 5)

        loop.run(ticks=1)
        assert not np.array_equal(first, pipeline.particles_snapshot())
        assert frames == [1, 1, 1]
