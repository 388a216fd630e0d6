"""Simulated progress for a request that reports none of its own.

``ProgressEstimator.track`` runs two tasks against the awaited request: a tick
task that raises the value by a random step up to ``ceiling`` and, once the
request settles, a reset task that returns the value to zero after the display
window. The tick task is cancelled and awaited in the same step that marks the
request settled, so it can never run past the request.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from typing import Awaitable, Callable, TypeVar


LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

PROGRESS_MIN = 0.0
PROGRESS_MAX = 100.0


class ProgressEstimator:
    def __init__(
        self,
        *,
        tick_seconds: float = 0.5,
        max_increment: float = 10.0,
        ceiling: float = 90.0,
        display_seconds: float = 1.0,
        rng: random.Random | None = None,
        on_change: Callable[[float], None] | None = None,
    ) -> None:
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be > 0")
        if max_increment <= 0:
            raise ValueError("max_increment must be > 0")
        if not PROGRESS_MIN < ceiling < PROGRESS_MAX:
            raise ValueError("ceiling must be between 0 and 100")
        if display_seconds <= 0:
            raise ValueError("display_seconds must be > 0")
        self.tick_seconds = tick_seconds
        self.max_increment = max_increment
        self.ceiling = ceiling
        self.display_seconds = display_seconds
        self._rng = rng or random.Random()
        self.on_change = on_change
        self._value = PROGRESS_MIN
        self._tick_task: asyncio.Task | None = None
        self._reset_task: asyncio.Task | None = None

    @property
    def value(self) -> float:
        return self._value

    @property
    def is_ticking(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    @property
    def is_resetting(self) -> bool:
        return self._reset_task is not None and not self._reset_task.done()

    def _set(self, value: float) -> None:
        self._value = min(max(value, PROGRESS_MIN), PROGRESS_MAX)
        if self.on_change is not None:
            self.on_change(self._value)

    async def _tick(self) -> None:
        while self._value < self.ceiling:
            await asyncio.sleep(self.tick_seconds)
            step = self._rng.uniform(0, self.max_increment)
            self._set(min(self._value + step, self.ceiling))

    async def _reset_after_display(self) -> None:
        await asyncio.sleep(self.display_seconds)
        self._set(PROGRESS_MIN)

    @staticmethod
    async def _cancel(task: asyncio.Task | None) -> None:
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def track(self, awaitable: Awaitable[T]) -> T:
        await self._cancel(self._reset_task)
        self._reset_task = None
        self._set(PROGRESS_MIN)
        self._tick_task = asyncio.create_task(self._tick())
        try:
            return await awaitable
        finally:
            await self._cancel(self._tick_task)
            self._tick_task = None
            self._set(PROGRESS_MAX)
            self._reset_task = asyncio.create_task(self._reset_after_display())
            LOGGER.debug("Progress estimator settled; reset scheduled")

    async def wait_for_reset(self) -> None:
        if self._reset_task is not None:
            await self._reset_task

    async def aclose(self) -> None:
        await self._cancel(self._tick_task)
        self._tick_task = None
        await self._cancel(self._reset_task)
        self._reset_task = None
