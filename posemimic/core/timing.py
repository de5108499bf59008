"""Animation loop pacing and per-tick cost measurement"""

import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Deque, Iterator


class FrameTimer:
    """Rolling average of how long each tick's work takes."""

    def __init__(self, window_size: int = 60):
        self._samples: Deque[float] = deque(maxlen=window_size)

    @contextmanager
    def measure(self) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self._samples.append(time.perf_counter() - started)

    @property
    def last_frame_time(self) -> float:
        return self._samples[-1] if self._samples else 0.0

    @property
    def average_frame_time(self) -> float:
        if not self._samples:
            return 0.0
        return sum(self._samples) / len(self._samples)

    def reset(self) -> None:
        self._samples.clear()


@dataclass
class FrameClock:
    """
    Schedules ticks at `target_fps` against fixed deadlines.

    Deadlines are counted from `start()`, so a slow tick is caught up on
    instead of shifting every later tick. A tick more than one period late
    resets the schedule rather than firing a burst.
    """
    target_fps: float = 30.0
    _frame_count: int = field(default=0, init=False)
    _next_deadline: float = field(default=0.0, init=False)

    def start(self) -> None:
        self._frame_count = 0
        self._next_deadline = time.perf_counter()

    def tick(self) -> int:
        """Count a tick and return its index."""
        index = self._frame_count
        self._frame_count += 1
        self._next_deadline += self.target_frame_duration
        return index

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def target_frame_duration(self) -> float:
        return 1.0 / self.target_fps

    def wait_for_next_frame(self) -> float:
        """Sleep until the next deadline; returns the time slept."""
        now = time.perf_counter()
        remaining = self._next_deadline - now
        if remaining > 0:
            time.sleep(remaining)
            return remaining
        if -remaining > self.target_frame_duration:
            self._next_deadline = now
        return 0.0
