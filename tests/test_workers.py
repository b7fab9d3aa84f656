from __future__ import annotations

import hashlib

import numpy as np
import pytest

from globefield.config import ContourConfig
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


def _pixels(width: int, height: int) -> bytes:
    gray = (np.add.outer(np.arange(height), np.arange(width)) * 7 % 256).astype(np.uint8)
    alpha = np.full_like(gray, 255)
    return np.stack((gray, gray, gray, alpha), axis=-1).tobytes()


def test_tasks_dispatch_to_matching_results() -> None:
    scalar = run_task(ScalarTask(FieldKind.MODEL, 3, _pixels(32, 16), 32, 16, smoothing_radius=1))
    assert isinstance(scalar, ScalarResult)
    assert scalar.kind is FieldKind.MODEL
    assert scalar.generation == 3

    gradient = run_task(GradientTask(3, scalar.grid))
    assert isinstance(gradient, GradientResult)
    assert gradient.grid.vectors.shape == (16, 32, 2)

    contours = run_task(ContourTask(3, scalar.grid, ContourConfig(thresholds=(0.5,), subsample_steps=(1,))))
    assert isinstance(contours, ContourResult)
    assert isinstance(contours.contours, tuple)
    assert contours.contours[0].threshold == 0.5

    elevation = run_task(ElevationTask(3, scalar.grid, 1))
    assert isinstance(elevation, ElevationResult)
    assert elevation.grid.values.shape == (16, 32)


def test_scalar_task_is_deterministic() -> None:
    task = ScalarTask(FieldKind.RELIEF, 1, _pixels(64, 32), 64, 32, smoothing_radius=2)

    first = run_task(task).grid.values
    second = run_task(task).grid.values
    assert hashlib.sha256(first.tobytes()).hexdigest() == hashlib.sha256(second.tobytes()).hexdigest()


def test_unknown_task_type_is_rejected() -> None:
    with pytest.raises(TypeError):
        run_task(object())
