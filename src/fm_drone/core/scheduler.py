"""
Per-frame scheduling.

The host owns the frame loop and calls FrameClock.tick() once per frame
(nominally 60 Hz, not guaranteed). Each PeriodicTask registered with the
clock runs once per tick, in scheduling order, until it is cancelled.
"""

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

TaskCallback = Callable[[float], None]


class PeriodicTask:
    """A repeating callback driven by a FrameClock.

    The callback receives the frame time. A task never runs re-entrantly,
    and a cancelled task never runs again unless restarted.
    """

    def __init__(
        self, clock: "FrameClock", callback: TaskCallback, name: Optional[str] = None
    ):
        self.clock = clock
        self.callback = callback
        self.name = name or getattr(callback, "__name__", "task")
        self.ticks = 0
        self._active = False
        self._running = False

    def __repr__(self) -> str:
        state = "active" if self._active else "cancelled"
        return f"PeriodicTask({self.name!r}, {state}, ticks={self.ticks})"

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self.clock._add(self)

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self.clock._remove(self)
        logger.debug("Cancelled task %s after %d ticks", self.name, self.ticks)

    def tick(self, now: float) -> None:
        if not self._active or self._running:
            return
        self._running = True
        try:
            self.callback(now)
        finally:
            self._running = False
        self.ticks += 1


class FrameClock:
    """Stand-in for the host's per-frame callback.

    Args:
        frame_rate: Nominal frames per second; only used when tick() is
            called without an explicit time.
        start_time: Initial frame time in seconds.
    """

    def __init__(self, frame_rate: float = 60.0, start_time: float = 0.0):
        if frame_rate <= 0:
            raise ValueError(f"frame_rate must be positive, got {frame_rate}")
        self.frame_rate = frame_rate
        self.now = start_time
        self.frames = 0
        self._tasks: list[PeriodicTask] = []
        self._ticking = False

    @property
    def frame_interval(self) -> float:
        return 1.0 / self.frame_rate

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks)

    def schedule(
        self, callback: TaskCallback, name: Optional[str] = None, start: bool = True
    ) -> PeriodicTask:
        task = PeriodicTask(self, callback, name)
        if start:
            task.start()
        return task

    def tick(self, now: Optional[float] = None) -> None:
        """Run one frame of every active task."""
        if self._ticking:
            logger.debug("Ignoring re-entrant tick at %.4f", self.now)
            return
        self.now = self.now + self.frame_interval if now is None else now
        self.frames += 1
        self._ticking = True
        try:
            for task in list(self._tasks):
                task.tick(self.now)
        finally:
            self._ticking = False

    def run(self, frames: int) -> None:
        for _ in range(frames):
            self.tick()

    def _add(self, task: PeriodicTask) -> None:
        if task not in self._tasks:
            self._tasks.append(task)

    def _remove(self, task: PeriodicTask) -> None:
        if task in self._tasks:
            self._tasks.remove(task)
