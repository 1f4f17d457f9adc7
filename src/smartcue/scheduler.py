# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Frame scheduling primitives for the motion controller.

All motion state is mutated on a single timeline: per-frame callbacks for
easing and momentum, and one-shot timers for countdowns and transition ends.
This module defines that timeline's interface and two implementations:
- AsyncioFrameScheduler: fixed-interval timer fallback on an asyncio loop
  (used by the server, where no display-synchronized callback exists)
- VirtualScheduler: a deterministic virtual clock, used for transcript replay
  and tests
"""

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

FrameCallback = Callable[[float], None]
TimerCallback = Callable[[], None]

DEFAULT_FRAME_RATE: int = 60


class FrameScheduler(ABC):
    """Interface for the single-threaded timeline motion runs on."""

    frame_interval: float

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds (monotonic)."""

    @abstractmethod
    def request_frame(self, callback: FrameCallback) -> object:
        """
        Schedule a callback for the next frame.

        Args:
            callback: Called with the frame timestamp

        Returns:
            Handle that can be passed to cancel()
        """

    @abstractmethod
    def call_later(self, delay: float, callback: TimerCallback) -> object:
        """
        Schedule a one-shot callback.

        Args:
            delay: Seconds from now
            callback: Called with no arguments

        Returns:
            Handle that can be passed to cancel()
        """

    @abstractmethod
    def cancel(self, handle: object) -> None:
        """Cancel a pending frame or timer. Cancelling twice is harmless."""


class AsyncioFrameScheduler(FrameScheduler):
    """
    Timer-based frame scheduler on an asyncio event loop.

    Frames are driven by loop.call_later at a fixed interval; the returned
    asyncio.TimerHandle is the cancellation handle.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        frame_rate: int = DEFAULT_FRAME_RATE
    ) -> None:
        if frame_rate <= 0:
            raise ValueError(f"frame_rate must be positive, got {frame_rate}")
        self._loop: asyncio.AbstractEventLoop | None = loop
        self.frame_interval = 1.0 / frame_rate

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The event loop (the running loop if none was given)."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def request_frame(self, callback: FrameCallback) -> asyncio.TimerHandle:
        loop = self.loop
        return loop.call_later(self.frame_interval, lambda: callback(loop.time()))

    def call_later(self, delay: float, callback: TimerCallback) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)

    def cancel(self, handle: object) -> None:
        if isinstance(handle, asyncio.Handle):
            handle.cancel()


@dataclass(order=True)
class VirtualTimer:
    """A pending callback on the virtual timeline."""
    due: float
    seq: int
    callback: Callable[..., None] = field(compare=False)
    is_frame: bool = field(default=False, compare=False)
    cancelled: bool = field(default=False, compare=False)


class VirtualScheduler(FrameScheduler):
    """
    Deterministic scheduler driven by advance().

    Nothing runs until advance() moves the clock; due callbacks then run in
    time order (ties in scheduling order) and may schedule further callbacks
    that also run if they fall inside the advanced span.
    """

    def __init__(self, frame_rate: int = DEFAULT_FRAME_RATE, start: float = 0.0) -> None:
        if frame_rate <= 0:
            raise ValueError(f"frame_rate must be positive, got {frame_rate}")
        self.frame_interval = 1.0 / frame_rate
        self._now: float = start
        self._queue: list[VirtualTimer] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def _push(self, delay: float, callback: Callable[..., None], is_frame: bool) -> VirtualTimer:
        timer = VirtualTimer(
            due=self._now + max(0.0, delay),
            seq=next(self._seq),
            callback=callback,
            is_frame=is_frame
        )
        heapq.heappush(self._queue, timer)
        return timer

    def request_frame(self, callback: FrameCallback) -> VirtualTimer:
        return self._push(self.frame_interval, callback, is_frame=True)

    def call_later(self, delay: float, callback: TimerCallback) -> VirtualTimer:
        return self._push(delay, callback, is_frame=False)

    def cancel(self, handle: object) -> None:
        if isinstance(handle, VirtualTimer):
            handle.cancelled = True

    @property
    def pending(self) -> int:
        """Number of callbacks still waiting to run."""
        return sum(1 for timer in self._queue if not timer.cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running everything that falls due."""
        end: float = self._now + seconds
        while self._queue and self._queue[0].due <= end + 1e-9:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = max(self._now, timer.due)
            if timer.is_frame:
                timer.callback(self._now)
            else:
                timer.callback()
        self._now = max(self._now, end)

    def run_frames(self, count: int) -> None:
        """Advance by a whole number of frames."""
        for _ in range(count):
            self.advance(self.frame_interval)
