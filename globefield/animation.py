"""Cooperative advection loop.

`stop()` only raises a flag. The loop looks at it once per tick, before
starting a step, so a step that is already running always finishes and the
particle arena is never left half-updated.
"""

from __future__ import annotations

import time
from typing import Callable

import structlog

from globefield.config import AnimationConfig

logger = structlog.get_logger()


class AnimationLoop:
    def __init__(
        self,
        step: Callable[[], None],
        config: AnimationConfig | None = None,
        *,
        on_frame: Callable[[int], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or AnimationConfig()
        self._step = step
        self._on_frame = on_frame
        self._clock = clock
        self._sleep = sleep
        self._cancelled = False
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def stop(self) -> None:
        self._cancelled = True

    def run(self, ticks: int | None = None) -> int:
        """Step until stopped, `ticks` steps are done or the duration cap is hit."""

        self._cancelled = False
        self._running = True
        started = self._clock()
        count = 0
        try:
            while not self._cancelled:
                if ticks is not None and count >= ticks:
                    break
                if self._clock() - started >= self.config.max_duration_seconds:
                    logger.info("animation_timeout", ticks=count, seconds=self.config.max_duration_seconds)
                    break

                tick_started = self._clock()
                self._step()
                count += 1
                if self._on_frame is not None:
                    self._on_frame(count)

                remaining = self.config.tick_seconds - (self._clock() - tick_started)
                if remaining > 0:
                    self._sleep(remaining)
        finally:
            self._running = False

        logger.debug("animation_stopped", ticks=count, cancelled=self._cancelled)
        return count
